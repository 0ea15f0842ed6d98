"""
AddonKeeper - World of Warcraft addon manager
Entry point tying the configuration, tracker, source clients and commands together
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone

from addon_tracker import (KIND_ADDON, KIND_LIBRARY, TYPE_MANUAL, TYPE_TUKUI, TYPE_WAGO, AddonTracker,
                           now_iso)
from backup_manager import SKIPPED_RECENT, BackupManager
from commands import DEST_NOT_CONFIGURED, dest_configured
from config_store import ConfigStore
from events import ListenerContext
from git_client import GitClient
from install_commands import InstallFromUrlCommand, InstallTukUICommand, InstallWagoCommand
from installer import Installer
from remove_command import RemoveAddonCommand
from scan_command import ScanCommand
from transfer import DEFAULT_EXPORT_PATH, analyze_import, export_addons, parse_import_file
from tukui import TukUIClient
from update_checker import UpdateChecker, is_update_available
from update_command import UpdateAddonCommand, owned_folder_message
from wago import WagoClient, is_wago_host
from wowinterface import WoWInterfaceClient

logger = logging.getLogger(__name__)


def _normalize_url(url):
    url = (url or '').strip().lower().rstrip('/')
    if url.endswith('.git'):
        url = url[:-4]
    return url


def _parse_time(value):
    try:
        moment = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class AddonManager:
    def __init__(self, config_store=None, tracker=None, git_client=None, wowinterface_client=None,
                 tukui_client=None, wago_client=None, installer_factory=None, backup_manager=None):
        """Initialize addon manager.

        Args:
            config_store: Optional ConfigStore - Settings (defaults to ~/.config/addonkeeper)
            tracker: Optional AddonTracker - Stored in the same directory as the settings
            git_client: Optional GitClient
            wowinterface_client: Optional WoWInterfaceClient
            tukui_client: Optional TukUIClient
            wago_client: Optional WagoClient - Built from the configured API key when omitted
            installer_factory: Optional callable(dest_dir) -> Installer
            backup_manager: Optional BackupManager
        """
        self.config_store = config_store or ConfigStore()
        self.tracker = tracker or AddonTracker(self.config_store.config_dir)
        self.git_client = git_client or GitClient()
        self.wowinterface_client = wowinterface_client or WoWInterfaceClient()
        self.tukui_client = tukui_client or TukUIClient()
        self.wago_client = wago_client
        self.installer_factory = installer_factory
        self.backup_manager = backup_manager or BackupManager()
        self.listeners = []

    # Events

    def add_listener(self, listener):
        """Register listener(event, *args) for lifecycle events."""
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def execute_command(self, command):
        return command.execute(ListenerContext(self.listeners))

    # Collaborators

    def _installer(self):
        dest_dir = self.config_store.get()['dest_dir']
        if self.installer_factory:
            return self.installer_factory(dest_dir)
        return Installer(dest_dir, git_client=self.git_client)

    def _wago_client(self):
        if self.wago_client is not None:
            return self.wago_client
        return WagoClient(self.config_store.get()['wago_api_key'])

    def _update_checker(self):
        return UpdateChecker(
            git_client=self.git_client,
            wowinterface_client=self.wowinterface_client,
            tukui_client=self.tukui_client,
            wago_client=self._wago_client(),
        )

    # Install / update / remove

    def install_from_url(self, url, branch=None):
        """Install from a GitHub, WoWInterface or Wago URL."""
        if is_wago_host(url):
            return self.install_wago(url)
        return self.execute_command(InstallFromUrlCommand(
            self.tracker, self.config_store, url,
            branch=branch,
            installer=self._installer(),
            git_client=self.git_client,
            wowinterface_client=self.wowinterface_client,
        ))

    def install_tukui(self, identifier, sub_folders=None):
        return self.execute_command(InstallTukUICommand(
            self.tracker, self.config_store, identifier,
            sub_folders=sub_folders,
            installer=self._installer(),
            git_client=self.git_client,
            tukui_client=self.tukui_client,
        ))

    def install_wago(self, identifier, channel=None):
        return self.execute_command(InstallWagoCommand(
            self.tracker, self.config_store, identifier,
            channel=channel,
            installer=self._installer(),
            git_client=self.git_client,
            wago_client=self.wago_client,
        ))

    def update_addon(self, folder, force=False):
        return self.execute_command(UpdateAddonCommand(
            self.tracker, self.config_store, folder,
            force=force,
            installer=self._installer(),
            git_client=self.git_client,
            update_checker=self._update_checker(),
        ))

    def remove_addon(self, folder, force=False):
        return self.execute_command(RemoveAddonCommand(
            self.tracker, self.config_store, folder,
            force=force,
            installer=self._installer(),
        ))

    def scan_installed_addons(self, folders=None):
        """Register and refresh addons found on disk.

        Returns:
            int - Number of newly tracked addons
        """
        return self.execute_command(ScanCommand(
            self.tracker, self.config_store,
            specific_folders=folders,
            git_client=self.git_client,
        ))

    def updatable_addons(self):
        """Records that update_all would process: tracked sources only, no owned folders."""
        seen = set()
        records = []
        for record in self.tracker.get_all():
            if record['type'] == TYPE_MANUAL or record['folder'] in seen:
                continue
            if self.tracker.is_owned(record['folder']):
                continue
            seen.add(record['folder'])
            records.append(record)
        return records

    def update_all(self, force=False):
        """Update every tracked addon on a bounded worker pool.

        A settings backup runs first when the backup policy allows it. One
        addon failing never stops the others.

        Returns:
            dict - Batch result with keys:
            - results: list - One update result per addon, in name order
            - updated / failed / skipped: int - Counts
            - backup: backup_settings() result
        """
        config = self.config_store.get()
        if not dest_configured(config):
            return {'results': [], 'updated': 0, 'failed': 0, 'skipped': 0, 'backup': None,
                    'error': DEST_NOT_CONFIGURED}

        backup = None
        if config['backup'].get('enabled'):
            try:
                backup = self.backup_settings()
            except OSError as e:
                logger.error("Settings backup before update failed: %s", e)

        records = self.updatable_addons()
        results = {}
        with ThreadPoolExecutor(max_workers=config['concurrency_limit']) as pool:
            futures = {pool.submit(self.update_addon, r['folder'], force): r['folder'] for r in records}
            for future in as_completed(futures):
                folder = futures[future]
                try:
                    results[folder] = future.result()
                except Exception as e:
                    logger.exception("Update of %s raised", folder)
                    results[folder] = {'success': False, 'updated': False, 'folder': folder,
                                       'message': None, 'error': str(e), 'remote_version': None}

        ordered = [results[r['folder']] for r in records]
        updated = sum(1 for r in ordered if r['success'] and r['updated'])
        failed = sum(1 for r in ordered if not r['success'])
        skipped = len(ordered) - updated - failed
        logger.info("Update all finished: %d updated, %d failed, %d up-to-date", updated, failed, skipped)
        return {'results': ordered, 'updated': updated, 'failed': failed, 'skipped': skipped,
                'backup': backup, 'error': None}

    def check_update(self, record, force=False):
        """Check one addon for an update, reusing a recent result.

        Args:
            record: dict - Tracked addon record
            force: bool - Ignore the cached result

        Returns:
            dict - {'success', 'update_available', 'remote_version', 'cached', 'error'}
        """
        owner = self.tracker.get_owner_of(record['folder'])
        if owner and owner['folder'] != record['folder']:
            return {'success': False, 'update_available': False, 'remote_version': None, 'cached': False,
                    'error': owned_folder_message(record['folder'], owner)}

        if not force and record['type'] != TYPE_MANUAL and record.get('remote_version'):
            last_checked = _parse_time(record.get('last_checked'))
            interval = self.config_store.get()['check_interval']
            if last_checked and (datetime.now(timezone.utc) - last_checked).total_seconds() < interval:
                return {
                    'success': True,
                    'update_available': is_update_available(record, record['remote_version']),
                    'remote_version': record['remote_version'],
                    'cached': True,
                    'error': None,
                }

        result = self._update_checker().check(record)
        if result['success']:
            self.tracker.update_addon(record['folder'], {
                'last_checked': now_iso(),
                'remote_version': result['remote_version'],
            })
        return {
            'success': result['success'],
            'update_available': result['update_available'],
            'remote_version': result['remote_version'],
            'cached': False,
            'error': result['error'],
        }

    # Records

    def set_addon_kind(self, folder, kind):
        """Classify an addon by hand; scans will no longer reclassify it."""
        if kind not in (KIND_ADDON, KIND_LIBRARY):
            raise ValueError(f"Unknown addon kind: {kind}")
        return self.tracker.update_addon(folder, {'kind': kind, 'kind_override': True})

    def is_already_installed(self, url_or_folder):
        """True when a record (or an owned folder) matches a folder name or source URL."""
        wanted = (url_or_folder or '').strip()
        if not wanted:
            return False
        wanted_url = _normalize_url(wanted)
        for record in self.tracker.get_all():
            if record['folder'].lower() == wanted.lower():
                return True
            if any(f.lower() == wanted.lower() for f in record['owned_folders']):
                return True
            if record['url'] and _normalize_url(record['url']) == wanted_url:
                return True
        return False

    # Settings backup and transfer

    def backup_settings(self, force=False):
        """Back up the WTF folder according to the backup policy.

        Args:
            force: bool - Ignore the minimum interval

        Returns:
            Path of the new archive, None if nothing was backed up, or 'skipped-recent'
        """
        config = self.config_store.get()
        if not dest_configured(config):
            return None
        policy = config['backup']
        interval = 0 if force else int(policy.get('min_interval_minutes', 0))
        result = self.backup_manager.backup_wtf(config['dest_dir'], interval)
        if result and result != SKIPPED_RECENT:
            self.backup_manager.cleanup_backups(config['dest_dir'], int(policy.get('retention', 0)))
        return result

    def export_addons(self, path=DEFAULT_EXPORT_PATH):
        return export_addons(self.tracker.get_all(), path)

    def import_addons(self, path, install=True):
        """Re-install the addons listed in an export file.

        Returns:
            dict - {'success', 'analysis', 'results', 'error'}
        """
        parsed = parse_import_file(path)
        if not parsed['success']:
            return {'success': False, 'analysis': None, 'results': [], 'error': parsed['error']}

        analysis = analyze_import(parsed['data'], self.tracker.get_all())
        results = []
        if install:
            for entry in analysis['to_install']:
                results.append(self._install_entry(entry))

        return {
            'success': all(r['success'] for r in results),
            'analysis': analysis,
            'results': results,
            'error': None,
        }

    def _install_entry(self, entry):
        if entry['type'] == TYPE_TUKUI:
            result = self.install_tukui(entry['name'])
        elif entry['type'] == TYPE_WAGO:
            result = self.install_wago(entry['url'])
        else:
            result = self.install_from_url(entry['url'])
        result['folder'] = entry['folder']
        return result
