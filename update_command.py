"""
Update Command
Updates one tracked addon in place, backing up every folder it overwrites
"""

import logging

from addon_tracker import TYPE_GITHUB, TYPE_MANUAL, TYPE_TUKUI, TYPE_WAGO, TYPE_WOWINTERFACE, now_iso
from commands import Command, configuration_error, dest_configured
from events import (ERROR, INSTALL_COMPLETE, INSTALL_COPYING, INSTALL_DOWNLOADING, INSTALL_EXTRACTING,
                    INSTALL_START, NULL_CONTEXT, UPDATE_CHECK_COMPLETE, UPDATE_CHECK_START)
from git_client import GitClient
from install_commands import plan_copies
from installer import Installer
from scan_command import ScanCommand
from update_checker import UpdateChecker

logger = logging.getLogger(__name__)

# Fields put back by undo
SNAPSHOT_FIELDS = ('version', 'commit_hash', 'last_updated', 'last_checked', 'remote_version', 'owned_folders')


def owned_folder_message(folder, owner):
    return (
        f'"{folder}" is part of "{owner["name"]}" ({owner["folder"]}) '
        f'and is updated together with it'
    )


class UpdateAddonCommand(Command):
    def __init__(self, tracker, config_store, folder, force=False, installer=None, git_client=None,
                 update_checker=None):
        """Initialize update.

        Args:
            tracker: AddonTracker
            config_store: ConfigStore
            folder: str - Folder of the tracked addon to update
            force: bool - Reinstall even when the remote version matches
            installer: Optional Installer
            git_client: Optional GitClient
            update_checker: Optional UpdateChecker - Holds the source clients
        """
        self.tracker = tracker
        self.config_store = config_store
        self.folder = folder
        self.force = force
        self.installer = installer
        self.git_client = git_client or (installer.git_client if installer else GitClient())
        self.update_checker = update_checker or UpdateChecker(git_client=self.git_client)
        self.snapshot = tracker.get_by_folder(folder)
        self._backups = []
        self._created = []
        self._absorbed = []

    def _result(self, success, updated=False, message=None, error=None, remote_version=None):
        return {
            'success': success,
            'updated': updated,
            'folder': self.folder,
            'message': message,
            'error': error,
            'remote_version': remote_version,
        }

    def execute(self, context=NULL_CONTEXT):
        owner = self.tracker.get_owner_of(self.folder)
        if owner and owner['folder'] != self.folder:
            return self._result(False, error=owned_folder_message(self.folder, owner))

        record = self.snapshot
        if record is None:
            return self._result(False, error=f'Addon "{self.folder}" is not tracked')
        if record['type'] == TYPE_MANUAL:
            return self._result(False, error=f'"{record["name"]}" was installed manually and cannot be updated')

        config = self.config_store.get()
        if not dest_configured(config):
            result = self._result(False)
            result.update(configuration_error())
            return result

        context.emit(UPDATE_CHECK_START, self.folder)
        check = self.update_checker.check(record)
        context.emit(UPDATE_CHECK_COMPLETE, self.folder, check)
        if not check['success']:
            return self._result(False, error=check['error'])

        if not check['update_available'] and not self.force:
            return self._result(
                True,
                message=f'"{record["name"]}" is already up-to-date',
                remote_version=check['remote_version'],
            )

        if self.installer is None:
            self.installer = Installer(config['dest_dir'], git_client=self.git_client)
        installer = self.installer

        context.emit(INSTALL_START, self.folder)
        staging_dir = installer.create_staging_dir('update')
        try:
            staged_root, commit_hash = self._stage(record, check, installer, staging_dir, context)

            context.emit(INSTALL_EXTRACTING, self.folder)
            plan = plan_copies(installer.discover(staged_root), staged_root, self.folder, record['name'])
            # A single-addon release always lands in the tracked folder
            if len(plan) == 1:
                plan = [(plan[0][0], self.folder)]

            context.emit(INSTALL_COPYING, self.folder)
            installed = []
            for source, folder in plan:
                backup = installer.backup_folder(folder)
                if backup:
                    self._backups.append((folder, backup))
                else:
                    self._created.append(folder)
                installer.copy_folder(source, folder)
                installed.append(folder)

            self._persist(record, check, commit_hash, installed)
        except Exception as e:
            logger.error("Update of %s failed: %s", self.folder, e)
            context.emit(ERROR, f"Update:{self.folder}", str(e))
            self._safe_undo(context)
            return self._result(False, error=f'Update failed: {e}')
        finally:
            installer.cleanup(staging_dir)

        for _folder, backup in self._backups:
            installer.discard_backup(backup)
        self._backups = []

        logger.info("Updated %s to %s", self.folder, check['remote_version'])
        context.emit(INSTALL_COMPLETE, self.folder, installed)
        return self._result(
            True,
            updated=True,
            message=f'"{record["name"]}" updated successfully',
            remote_version=check['remote_version'],
        )

    def undo(self, context=NULL_CONTEXT):
        """Put every overwritten folder back and revert the record's version fields."""
        for folder, backup in reversed(self._backups):
            try:
                self.installer.restore_folder(folder, backup)
                self.installer.discard_backup(backup)
            except OSError as e:
                logger.error("Rollback could not restore %s from %s: %s", folder, backup, e)
        self._backups = []

        for folder in self._created:
            try:
                self.installer.remove_folder(folder)
            except OSError as e:
                logger.error("Rollback could not remove %s: %s", folder, e)
        self._created = []

        if self.snapshot and self.tracker.exists(self.folder):
            self.tracker.update_addon(self.folder, {k: self.snapshot[k] for k in SNAPSHOT_FIELDS})

        for absorbed in reversed(self._absorbed):
            if not self.tracker.exists(absorbed['folder']):
                self.tracker.upsert_addon(absorbed)
        self._absorbed = []

    def _stage(self, record, check, installer, staging_dir, context):
        """Fetch the new release into staging_dir.

        Returns:
            tuple - (staged root, commit hash or None)
        """
        context.emit(INSTALL_DOWNLOADING, self.folder)
        checker = self.update_checker
        metadata = check['metadata']

        if record['type'] == TYPE_GITHUB:
            repo_path = installer.stage_clone(record['url'], staging_dir)
            return repo_path, self.git_client.get_current_commit(repo_path) or check['remote_hash']
        if record['type'] == TYPE_WOWINTERFACE:
            url = checker.wowinterface_client.artifact_location(metadata)
            return installer.stage_archive(url, staging_dir), None
        if record['type'] == TYPE_TUKUI:
            url = checker.tukui_client.artifact_location(metadata)
            return installer.stage_archive(url, staging_dir), None
        if record['type'] == TYPE_WAGO:
            url = checker.wago_client.artifact_location(metadata, metadata.get('channel'))
            headers = checker.wago_client.download_headers()
            return installer.stage_archive(url, staging_dir, headers=headers), None
        raise ValueError(f"Cannot update addon type {record['type']}")

    def _persist(self, record, check, commit_hash, installed):
        owned = set(record['owned_folders']) | {f for f in installed if f != self.folder}
        self.tracker.update_addon(self.folder, {'owned_folders': sorted(owned)})

        # Folders can't be both owned and tracked on their own
        for folder in owned:
            absorbed = self.tracker.get_by_folder(folder)
            if absorbed and self.tracker.remove_addon(folder):
                self._absorbed.append(absorbed)
                logger.info("Removed independent record for %s, now owned by %s", folder, self.folder)

        ScanCommand(self.tracker, self.config_store, specific_folders=installed, git_client=self.git_client).execute()

        timestamp = now_iso()
        updates = {
            'last_updated': timestamp,
            'last_checked': timestamp,
            'remote_version': check['remote_version'],
        }
        if record['type'] == TYPE_GITHUB:
            updates['commit_hash'] = commit_hash
            updates['version'] = commit_hash[:7] if commit_hash else check['remote_version']
        else:
            updates['version'] = check['remote_version']
        self.tracker.update_addon(self.folder, updates)
