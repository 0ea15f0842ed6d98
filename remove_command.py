"""
Remove Command
Deletes a tracked addon and every folder it owns
"""

import logging

from commands import Command, configuration_error, dest_configured
from events import ERROR, NULL_CONTEXT, REMOVE_COMPLETE, REMOVE_START
from installer import Installer

logger = logging.getLogger(__name__)


class RemoveAddonCommand(Command):
    def __init__(self, tracker, config_store, folder, force=False, installer=None):
        """Initialize remove.

        Args:
            tracker: AddonTracker
            config_store: ConfigStore
            folder: str - Folder of the tracked addon
            force: bool - Remove even if other addons require it
            installer: Optional Installer
        """
        self.tracker = tracker
        self.config_store = config_store
        self.folder = folder
        self.force = force
        self.installer = installer
        self.snapshot = tracker.get_by_folder(folder)
        self._backups = []
        self._removed_reference = None

    def _result(self, success, removed_folders=None, error=None, blocked=None):
        return {
            'success': success,
            'removed_folders': removed_folders or [],
            'error': error,
            'blocked': blocked,
        }

    def blocking_dependents(self, folders):
        """Records outside this removal that require one of the folders."""
        dependents = {}
        for folder in folders:
            for record in self.tracker.get_required_dependents(folder):
                if record['folder'] not in folders:
                    dependents[record['folder']] = record
        return [dependents[f] for f in sorted(dependents)]

    def execute(self, context=NULL_CONTEXT):
        config = self.config_store.get()
        if not dest_configured(config):
            result = self._result(False)
            result.update(configuration_error())
            return result

        record = self.snapshot
        if record is None:
            owner = self.tracker.get_owner_of(self.folder)
            if owner:
                return self._result(False, error=f'"{self.folder}" is part of "{owner["name"]}"; remove that instead')
            return self._result(False, error=f'Addon "{self.folder}" is not tracked')

        folders = [self.folder] + record['owned_folders']

        if not self.force:
            dependents = self.blocking_dependents(folders)
            if dependents:
                names = ', '.join(d['name'] for d in dependents)
                return self._result(False, error=f'"{record["name"]}" is required by {names}', blocked={
                    'dependents': [d['folder'] for d in dependents],
                    'reason': 'required_dependency',
                })

        if self.installer is None:
            self.installer = Installer(config['dest_dir'])
        installer = self.installer

        context.emit(REMOVE_START, self.folder)
        removed = []
        try:
            for folder in folders:
                backup = installer.backup_folder(folder)
                if backup:
                    self._backups.append((folder, backup))

            self.tracker.remove_addon(self.folder)
            self._removed_reference = self.config_store.remove_repository(record['name'])

            for folder in folders:
                if installer.folder_exists(folder):
                    installer.remove_folder(folder)
                    removed.append(folder)
        except Exception as e:
            logger.error("Removing %s failed: %s", self.folder, e)
            context.emit(ERROR, f"Remove:{self.folder}", str(e))
            self._safe_undo(context)
            return self._result(False, error=f'Remove failed: {e}')

        for _folder, backup in self._backups:
            installer.discard_backup(backup)
        self._backups = []

        logger.info("Removed %s (%s)", self.folder, ', '.join(removed) or 'no folders on disk')
        context.emit(REMOVE_COMPLETE, self.folder, removed)
        return self._result(True, removed_folders=removed)

    def undo(self, context=NULL_CONTEXT):
        """Restore the backed-up folders and put the record back."""
        for folder, backup in self._backups:
            try:
                self.installer.restore_folder(folder, backup)
                self.installer.discard_backup(backup)
            except OSError as e:
                logger.error("Rollback could not restore %s from %s: %s", folder, backup, e)
        self._backups = []

        if self.snapshot and not self.tracker.exists(self.folder):
            self.tracker.upsert_addon(self.snapshot)
        if self._removed_reference:
            self.config_store.add_repository(self._removed_reference)
            self._removed_reference = None
