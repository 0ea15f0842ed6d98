"""
Installer
Stages addon downloads in a temporary directory and copies them into the AddOns folder
"""

import logging
import os
import shutil
import stat
import sys
import tempfile
import zipfile
from pathlib import Path

import requests

from errors import CloneError, DownloadError, ExtractionError
from folder_structure_detector import FolderStructureDetector
from git_client import GitClient

logger = logging.getLogger(__name__)

TEMP_PREFIX = 'addonkeeper'
USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)
CHUNK_SIZE = 8192


def _handle_remove_readonly(func, path, exc):
    """Clear the read-only bit (git objects on Windows) and retry the removal."""
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_directory_safe(path):
    """Remove a directory tree, retrying read-only files.

    Args:
        path: str/Path - Directory to remove
    """
    path = Path(path)
    if not path.exists():
        return
    if path.is_file() or path.is_symlink():
        path.unlink()
        return
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_handle_remove_readonly)
    else:
        shutil.rmtree(path, onerror=_handle_remove_readonly)


def safe_extract(zip_path, dest_dir):
    """Extract a zip archive, skipping entries that would land outside dest_dir.

    Args:
        zip_path: str/Path - Archive to extract
        dest_dir: str/Path - Target directory (created if missing)

    Returns:
        list - Paths written, relative to dest_dir

    Raises:
        ExtractionError - The archive could not be read
    """
    dest_dir = Path(dest_dir).resolve()
    dest_dir.mkdir(parents=True, exist_ok=True)
    written = []

    try:
        with zipfile.ZipFile(zip_path, 'r') as zip_ref:
            for info in zip_ref.infolist():
                name = info.filename.replace('\\', '/')
                target = (dest_dir / name).resolve()
                if target != dest_dir and dest_dir not in target.parents:
                    logger.warning("Skipping unsafe archive entry: %s", info.filename)
                    continue
                if target == dest_dir:
                    continue

                if name.endswith('/'):
                    target.mkdir(parents=True, exist_ok=True)
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with zip_ref.open(info) as src, open(target, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
                written.append(str(target.relative_to(dest_dir)))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, RuntimeError) as e:
        raise ExtractionError(f"Unzip failed: {e}") from e

    return written


class Installer:
    def __init__(self, dest_dir, git_client=None, session=None, detector=None):
        """Initialize installer.

        Args:
            dest_dir: str/Path - The AddOns directory addons are installed into
            git_client: Optional GitClient - Used for clone staging
            session: Optional requests.Session - Used for downloads
            detector: Optional FolderStructureDetector
        """
        self.dest_dir = Path(dest_dir)
        self.git_client = git_client or GitClient()
        self.session = session or requests.Session()
        self.detector = detector or FolderStructureDetector()

    def dest_path(self, folder_name):
        if not folder_name or folder_name in ('.', '..') or '/' in folder_name or '\\' in folder_name:
            raise ValueError(f"Invalid addon folder name: {folder_name!r}")
        return self.dest_dir / folder_name

    def folder_exists(self, folder_name):
        return self.dest_path(folder_name).exists()

    def create_staging_dir(self, purpose='install'):
        return Path(tempfile.mkdtemp(prefix=f'{TEMP_PREFIX}-{purpose}-'))

    def cleanup(self, path):
        """Remove a temporary directory; failures are logged, never raised."""
        if not path:
            return
        try:
            remove_directory_safe(path)
        except OSError as e:
            logger.error("Failed to remove temporary directory %s: %s", path, e)

    def stage_clone(self, url, staging_dir, branch=None):
        """Clone a repository into staging_dir/repo.

        Returns:
            Path - The cloned repository root
        """
        repo_path = Path(staging_dir) / 'repo'
        if not self.git_client.clone(url, repo_path, branch=branch):
            raise CloneError(f"Git clone failed for {url}")
        return repo_path

    def download(self, url, dest_path, headers=None):
        """Stream a file to dest_path.

        Raises:
            DownloadError - Network failure or a non-200 response
        """
        request_headers = {'User-Agent': USER_AGENT}
        if headers:
            request_headers.update(headers)

        logger.info("Downloading %s", url)
        try:
            with self.session.get(url, headers=request_headers, stream=True, timeout=60) as response:
                if response.status_code != 200:
                    raise DownloadError(f"Download failed: {response.status_code} for {url}")
                with open(dest_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise DownloadError(f"Download failed for {url}: {e}") from e
        return Path(dest_path)

    def stage_archive(self, url, staging_dir, headers=None):
        """Download and extract an archive into staging_dir/extract.

        Returns:
            Path - The extraction root
        """
        staging_dir = Path(staging_dir)
        zip_path = staging_dir / 'addon.zip'
        self.download(url, zip_path, headers=headers)
        extract_path = staging_dir / 'extract'
        safe_extract(zip_path, extract_path)
        zip_path.unlink()
        return extract_path

    def discover(self, staged_root):
        return self.detector.detect_addon_folders(staged_root)

    def copy_folder(self, source, folder_name):
        """Copy source into the AddOns directory as folder_name, replacing any existing folder.

        Returns:
            Path - The installed folder
        """
        dest = self.dest_path(folder_name)
        if dest.exists():
            remove_directory_safe(dest)
        self.dest_dir.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, dest, ignore=shutil.ignore_patterns('.git'))
        return dest

    def backup_folder(self, folder_name):
        """Copy an installed folder to a temporary location.

        Returns:
            Path - Backup copy, or None when the folder is not installed
        """
        source = self.dest_path(folder_name)
        if not source.exists():
            return None
        backup_root = Path(tempfile.mkdtemp(prefix=f'{TEMP_PREFIX}-backup-'))
        backup_path = backup_root / folder_name
        shutil.copytree(source, backup_path, symlinks=True)
        return backup_path

    def restore_folder(self, folder_name, backup_path):
        """Put a backup made by backup_folder back in place."""
        dest = self.dest_path(folder_name)
        if dest.exists():
            remove_directory_safe(dest)
        shutil.copytree(backup_path, dest, symlinks=True)

    def discard_backup(self, backup_path):
        if backup_path:
            self.cleanup(Path(backup_path).parent)

    def remove_folder(self, folder_name):
        remove_directory_safe(self.dest_path(folder_name))
