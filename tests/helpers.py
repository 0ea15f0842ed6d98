"""Fakes and file builders shared by the test modules."""

import io
import json
import zipfile
from pathlib import Path

import requests

from git_client import GitClient


def toc_text(title=None, version=None, **fields):
    lines = ['## Interface: 110002']
    if title:
        lines.append(f'## Title: {title}')
    if version:
        lines.append(f'## Version: {version}')
    for key, value in fields.items():
        lines.append(f'## {key}: {value}')
    lines.append('Core.lua')
    return '\n'.join(lines) + '\n'


def write_addon(parent_dir, folder, version='1.0', **fields):
    """Create <parent_dir>/<folder>/<folder>.toc plus a Lua file."""
    path = Path(parent_dir) / folder
    path.mkdir(parents=True, exist_ok=True)
    (path / f'{folder}.toc').write_text(toc_text(title=fields.pop('title', folder), version=version, **fields))
    (path / 'Core.lua').write_text(f'-- {folder} {version}\n')
    return path


def addon_files(folder, version='1.0'):
    """Archive/repository entries for one addon folder."""
    return {
        f'{folder}/{folder}.toc': toc_text(title=folder, version=version),
        f'{folder}/Core.lua': f'-- {folder} {version}\n',
    }


def zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def snapshot_tree(path):
    """Map of relative file path -> bytes for every file under path."""
    path = Path(path)
    return {
        str(p.relative_to(path)): p.read_bytes()
        for p in sorted(path.rglob('*')) if p.is_file()
    }


class DummyResponse:
    def __init__(self, status_code=200, json_data=None, content=b''):
        self.status_code = status_code
        self._json = json_data
        self.content = content if json_data is None else json.dumps(json_data).encode()

    def json(self):
        if self._json is None:
            return json.loads(self.content.decode() or 'not json')
        return self._json

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Stands in for requests.Session; routes map URL -> DummyResponse or exception."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def add(self, url, response):
        self.routes[url] = response

    def get(self, url, headers=None, params=None, stream=False, timeout=None):
        self.calls.append({'url': url, 'headers': headers or {}, 'params': params})
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f'No route for {url}')
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self):
        return [call['url'] for call in self.calls]


class FakeGitClient(GitClient):
    """Git client that clones from in-memory repositories instead of running git."""

    def __init__(self):
        super().__init__()
        self.repos = {}
        self.remote_hashes = {}
        self.clones = []

    def add_repo(self, url, files, commit_hash):
        self.repos[url] = {'files': files, 'hash': commit_hash}
        self.remote_hashes[url] = commit_hash

    def clone(self, url, dest, branch=None):
        self.clones.append(url)
        repo = self.repos.get(url)
        if repo is None:
            return False
        dest = Path(dest)
        for name, content in repo['files'].items():
            target = dest / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        mark_git_checkout(dest, repo['hash'])
        return True

    def get_remote_commit(self, url, branch=None):
        return self.remote_hashes.get(url)

    def get_current_commit(self, repo_path):
        head = Path(repo_path) / '.git' / 'HEAD_HASH'
        return head.read_text().strip() if head.exists() else None

    def get_remote_url(self, repo_path):
        origin = Path(repo_path) / '.git' / 'ORIGIN'
        return origin.read_text().strip() if origin.exists() else None


def mark_git_checkout(path, commit_hash, origin=None):
    git_dir = Path(path) / '.git'
    git_dir.mkdir(parents=True, exist_ok=True)
    (git_dir / 'HEAD_HASH').write_text(commit_hash)
    if origin:
        (git_dir / 'ORIGIN').write_text(origin)
