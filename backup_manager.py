"""
Backup Manager
Zips the WTF settings folder next to the AddOns directory, at most once per interval
"""

import logging
import os
import re
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

SKIPPED_RECENT = 'skipped-recent'
BACKUP_PREFIX = 'WTF-'
TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%S'
BACKUP_NAME_PATTERN = re.compile(r'^WTF-(\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})(?:-(\d{3}))?Z\.zip$')


def retail_dir(dest_dir):
    """_retail_ directory for an Interface/AddOns path."""
    return Path(dest_dir).parent.parent


def backups_dir(dest_dir):
    return retail_dir(dest_dir) / 'Backups' / 'WTF'


def backup_file_name(moment):
    """'WTF-2024-01-31T12-00-00-000Z.zip', sortable by creation time."""
    return f"{BACKUP_PREFIX}{moment.strftime(TIMESTAMP_FORMAT)}-{moment.microsecond // 1000:03d}Z.zip"


def parse_backup_time(path):
    """Creation time of a backup, read from its name, or from mtime for foreign names."""
    path = Path(path)
    match = BACKUP_NAME_PATTERN.match(path.name)
    if match:
        moment = datetime.strptime(match.group(1), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        return moment + timedelta(milliseconds=int(match.group(2) or 0))
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class BackupManager:
    def list_backups(self, dest_dir):
        """Backup archives sorted oldest first."""
        directory = backups_dir(dest_dir)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob('*.zip') if p.is_file())

    def backup_wtf(self, dest_dir, min_interval_minutes=0, now=None):
        """Back up the WTF folder to _retail_/Backups/WTF/WTF-<timestamp>.zip.

        Args:
            dest_dir: str/Path - The Interface/AddOns directory
            min_interval_minutes: int - Skip when the newest backup is younger than this
            now: Optional datetime - Current time (UTC)

        Returns:
            Path to the new archive, None if there is no WTF folder, or SKIPPED_RECENT
        """
        now = now or datetime.now(timezone.utc)
        wtf_dir = retail_dir(dest_dir) / 'WTF'
        if not wtf_dir.is_dir():
            logger.info("No WTF folder at %s, nothing to back up", wtf_dir)
            return None

        target_dir = backups_dir(dest_dir)
        target_dir.mkdir(parents=True, exist_ok=True)

        if min_interval_minutes > 0:
            existing = self.list_backups(dest_dir)
            if existing:
                latest = existing[-1]
                age = now - parse_backup_time(latest)
                if age < timedelta(minutes=min_interval_minutes):
                    logger.info("Skipping WTF backup, %s is recent", latest.name)
                    return SKIPPED_RECENT

        zip_path = target_dir / backup_file_name(now)
        tmp_path = zip_path.with_name(zip_path.name + '.part')
        try:
            with zipfile.ZipFile(tmp_path, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
                for root, _dirs, files in os.walk(wtf_dir):
                    for file_name in sorted(files):
                        file_path = Path(root) / file_name
                        arcname = Path('WTF') / file_path.relative_to(wtf_dir)
                        archive.write(file_path, arcname.as_posix())
            os.replace(tmp_path, zip_path)
        except Exception:
            if tmp_path.exists():
                tmp_path.unlink()
            raise

        logger.info("Backed up WTF to %s", zip_path)
        return zip_path

    def cleanup_backups(self, dest_dir, retention):
        """Delete old backups, keeping the newest `retention` archives.

        Returns:
            list - Paths deleted
        """
        if retention < 1:
            return []
        backups = self.list_backups(dest_dir)
        deleted = []
        for path in backups[:-retention]:
            try:
                path.unlink()
                deleted.append(path)
            except OSError as e:
                logger.warning("Could not delete old backup %s: %s", path, e)
        return deleted
