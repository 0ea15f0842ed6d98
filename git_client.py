"""
Git Client
Clones addon repositories and reads commit hashes through the git command line
"""

import logging
import os
import re
import subprocess
from pathlib import Path
from urllib.parse import urlparse

from errors import NOT_FOUND

logger = logging.getLogger(__name__)

HASH_PATTERN = re.compile(r'^([0-9a-f]{7,40})\s')


def repo_name_from_url(url):
    """Last path segment of a repository URL with any .git suffix removed."""
    path = urlparse(url).path.rstrip('/')
    name = path.split('/')[-1] if path else ''
    if name.endswith('.git'):
        name = name[:-4]
    return name


class GitClient:
    def __init__(self, timeout=120):
        self.timeout = timeout

    def _run_command(self, cmd, cwd=None, **kwargs):
        """Run a subprocess command while avoiding new console window on Windows.

        Args:
            cmd: list - Command and arguments
            cwd: Optional str - Working directory
            **kwargs: Additional subprocess.run arguments

        Returns:
            subprocess.CompletedProcess - Process result with returncode, stdout, stderr
        """
        if os.name == 'nt':
            kwargs.setdefault('creationflags', subprocess.CREATE_NO_WINDOW)
        kwargs.setdefault('timeout', self.timeout)
        return subprocess.run(cmd, cwd=cwd, **kwargs)

    def resolve_metadata(self, url):
        """Validate a repository URL and derive the addon name it should install as.

        Returns:
            dict - {'success': True, 'metadata': {...}} or {'success': False, 'error': tag}
        """
        parsed = urlparse(url)
        parts = [p for p in parsed.path.strip('/').split('/') if p]
        if parsed.scheme not in ('http', 'https') or not parsed.netloc or len(parts) < 2:
            return {'success': False, 'error': NOT_FOUND}

        return {
            'success': True,
            'metadata': {
                'source': 'github',
                'url': url,
                'owner': parts[0],
                'target_name': repo_name_from_url(url),
                'branch': None,
            }
        }

    def artifact_location(self, metadata, channel=None):
        return metadata['url']

    def clone(self, url, dest, branch=None):
        """Shallow clone a repository.

        Args:
            url: str - Remote URL
            dest: str/Path - Directory to clone into (must not exist or be empty)
            branch: Optional str - Branch to clone instead of the remote default

        Returns:
            bool - True if the clone succeeded
        """
        cmd = ['git', 'clone', '--quiet', '--depth', '1']
        if branch:
            cmd.extend(['--branch', branch])
        cmd.extend([url, str(dest)])

        try:
            result = self._run_command(cmd, capture_output=True, text=True)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("git clone %s failed: %s", url, e)
            return False

        if result.returncode != 0:
            logger.error("git clone %s failed: %s", url, result.stderr.strip())
            return False
        return True

    def get_remote_commit(self, url, branch=None):
        """Latest commit hash of a remote branch (or HEAD) via git ls-remote.

        Returns:
            str - Commit hash or None if retrieval failed
        """
        ref = f'refs/heads/{branch}' if branch else 'HEAD'
        try:
            result = self._run_command(
                ['git', 'ls-remote', url, ref],
                capture_output=True,
                text=True,
                timeout=30
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("git ls-remote %s failed: %s", url, e)
            return None

        if result.returncode != 0 or not result.stdout.strip():
            return None

        match = HASH_PATTERN.match(result.stdout.strip())
        return match.group(1) if match else None

    def get_current_commit(self, repo_path):
        """Commit hash checked out in a local repository, or None."""
        try:
            result = self._run_command(
                ['git', 'rev-parse', 'HEAD'],
                cwd=repo_path,
                capture_output=True,
                text=True,
                timeout=5
            )
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return None

    def get_remote_url(self, repo_path):
        """Origin URL of a local repository, or None."""
        if not (Path(repo_path) / '.git').exists():
            return None
        try:
            result = self._run_command(
                ['git', 'remote', 'get-url', 'origin'],
                cwd=repo_path,
                capture_output=True,
                text=True,
                timeout=5
            )
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return None
