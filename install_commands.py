"""
Install Commands
Install addons from a GitHub/WoWInterface URL or from the TukUI and Wago catalogs
"""

import logging
from urllib.parse import urlparse

from addon_tracker import TYPE_GITHUB, TYPE_TUKUI, TYPE_WAGO, TYPE_WOWINTERFACE, new_addon_record, now_iso
from commands import Command, configuration_error, dest_configured
from errors import NoAddonsFoundError, describe_source_error
from events import (ERROR, FOLDER_OWNERSHIP, INSTALL_COMPLETE, INSTALL_COPYING, INSTALL_DOWNLOADING,
                    INSTALL_EXTRACTING, INSTALL_START, NULL_CONTEXT)
from folder_structure_detector import TOC_SUFFIX
from git_client import GitClient
from installer import Installer
from ownership_resolver import resolve_parent, split_ownership, strip_archive_extension
from scan_command import ScanCommand
from tukui import TukUIClient
from wago import WagoClient, best_available_channel, is_wago_host
from wowinterface import WoWInterfaceClient

logger = logging.getLogger(__name__)

WAGO_KEY_MISSING = 'Wago API key required. Please set it in Settings.'


def _host(url):
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


def _source_failure(source, result, identifier):
    return {
        'success': False,
        'installed_addons': [],
        'error': describe_source_error(source, result.get('error'), identifier),
        'error_tag': result.get('error'),
    }


def plan_copies(discovered, staged_root, target_name, display_name=None):
    """Work out which staged folders to copy and under which names.

    A .toc file at the staged root means the whole tree is one addon; it is
    installed under the name of its TOC (flavor variants collapse to the
    shortest name). First-level folders with a .toc of their own are sibling
    addons and are copied as well; folders whose TOCs sit deeper (Libs/...)
    only travel inside the root addon. Without a root .toc every discovered
    first-level folder is copied.

    Returns:
        list - (source path, folder name) pairs
    """
    if discovered['root_tocs']:
        name = resolve_parent(discovered['root_tocs'], target_name, display_name)
        plan = [(staged_root, name)]
        for folder in discovered['folders']:
            if folder == name:
                continue
            if any(p.is_file() for p in (staged_root / folder).glob(f'*{TOC_SUFFIX}')):
                plan.append((staged_root / folder, folder))
            else:
                logger.warning("Folder %s has no top-level .toc, installed only inside %s", folder, name)
        return plan
    if not discovered['folders']:
        raise NoAddonsFoundError('No addon folders (.toc files) found in download')
    return [(staged_root / folder, folder) for folder in discovered['folders']]


class InstallCommand(Command):
    """Stage, copy and register one release.

    Subclasses implement _prepare (resolve the source, return a failure
    result or None), _stage (fetch into the staging directory) and
    _record_fields (source metadata for the parent record).
    """

    label = 'Install'

    def __init__(self, tracker, config_store, installer=None, git_client=None):
        self.tracker = tracker
        self.config_store = config_store
        self.installer = installer
        self.git_client = git_client or (installer.git_client if installer else GitClient())
        self.target_name = None
        self.display_name = None
        self._copied = []

    def execute(self, context=NULL_CONTEXT):
        config = self.config_store.get()
        if not dest_configured(config):
            return configuration_error(installed_addons=[])

        failure = self._prepare(config)
        if failure:
            return failure

        if self.installer is None:
            self.installer = Installer(config['dest_dir'], git_client=self.git_client)
        installer = self.installer
        context.emit(INSTALL_START, self.target_name)
        staging_dir = installer.create_staging_dir('install')
        try:
            staged_root = self._stage(installer, staging_dir, context)

            context.emit(INSTALL_EXTRACTING, self.target_name)
            plan = self._plan(installer, staged_root)

            context.emit(INSTALL_COPYING, self.target_name)
            for source, folder in plan:
                # Listed first so undo also clears a partial copy
                self._copied.append(folder)
                installer.copy_folder(source, folder)

            parent = self._parent(self._copied)
            owned = split_ownership(self._copied, parent)
            self._register(parent, owned, config, context)
        except Exception as e:
            logger.error("%s of %s failed: %s", self.label, self.target_name, e)
            context.emit(ERROR, f"{self.label}:{self.target_name}", str(e))
            self._safe_undo(context)
            return {'success': False, 'installed_addons': [], 'error': str(e)}
        finally:
            installer.cleanup(staging_dir)

        installed = list(self._copied)
        logger.info("Installed %s (%s)", parent, ', '.join(installed))
        context.emit(INSTALL_COMPLETE, parent, installed)
        return {
            'success': True,
            'installed_addons': installed,
            'parent': parent,
            'owned_folders': owned,
            'error': None,
        }

    def undo(self, context=NULL_CONTEXT):
        """Delete every folder copied so far and the records made for them."""
        for folder in reversed(self._copied):
            try:
                self.installer.remove_folder(folder)
            except OSError as e:
                logger.error("Rollback could not remove %s: %s", folder, e)
            self.tracker.remove_addon(folder)
        self._copied = []

    def _prepare(self, config):
        raise NotImplementedError

    def _stage(self, installer, staging_dir, context):
        raise NotImplementedError

    def _record_fields(self):
        raise NotImplementedError

    def _plan(self, installer, staged_root):
        return plan_copies(installer.discover(staged_root), staged_root, self.target_name, self.display_name)

    def _parent(self, installed):
        return resolve_parent(installed, self.target_name, self.display_name)

    def _register(self, parent, owned, config, context):
        """Create or refresh the parent record and fold owned folders into it."""
        # Owned folders stop being independently tracked
        for folder in owned:
            if self.tracker.remove_addon(folder):
                logger.info("Removed independent record for %s, now owned by %s", folder, parent)

        ScanCommand(self.tracker, self.config_store, specific_folders=[parent], git_client=self.git_client).execute()

        fields = self._record_fields()
        fields['owned_folders'] = owned
        fields['flavor'] = config.get('flavor', 'retail')
        fields['last_updated'] = now_iso()
        fields = {k: v for k, v in fields.items() if v is not None}

        if self.tracker.exists(parent):
            self.tracker.update_addon(parent, fields)
        else:
            self.tracker.add_addon(new_addon_record(parent, **fields))

        if owned:
            context.emit(FOLDER_OWNERSHIP, parent, owned)


class InstallFromUrlCommand(InstallCommand):
    label = 'Install'

    def __init__(self, tracker, config_store, url, branch=None, installer=None, git_client=None,
                 wowinterface_client=None):
        """Initialize install from a GitHub or WoWInterface URL.

        Args:
            tracker: AddonTracker
            config_store: ConfigStore
            url: str - Repository or addon page URL
            branch: Optional str - Git branch to clone
            installer: Optional Installer
            git_client: Optional GitClient
            wowinterface_client: Optional WoWInterfaceClient
        """
        super().__init__(tracker, config_store, installer=installer, git_client=git_client)
        self.url = url.strip()
        self.branch = branch
        self.wowinterface_client = wowinterface_client or WoWInterfaceClient()
        self.addon_type = None
        self.metadata = None
        self.commit_hash = None

    def _prepare(self, config):
        host = _host(self.url)
        if host.endswith('github.com'):
            self.addon_type = TYPE_GITHUB
            result = self.git_client.resolve_metadata(self.url)
            if not result['success']:
                return {'success': False, 'installed_addons': [], 'error': f'Invalid repository URL: {self.url}'}
            self.metadata = result['metadata']
            self.target_name = self.metadata['target_name']
            return None

        if host.endswith('wowinterface.com'):
            self.addon_type = TYPE_WOWINTERFACE
            result = self.wowinterface_client.resolve_metadata(self.url)
            if not result['success']:
                return _source_failure('WoWInterface', result, self.url)
            self.metadata = result['metadata']
            self.display_name = self.metadata['name'] or None
            self.target_name = strip_archive_extension(self.metadata['file_name']) or self.metadata['name']
            return None

        if host.endswith('curseforge.com'):
            return {'success': False, 'installed_addons': [], 'error': 'CurseForge downloads are not supported'}

        return {'success': False, 'installed_addons': [], 'error': f'Unsupported addon URL: {self.url}'}

    def _stage(self, installer, staging_dir, context):
        context.emit(INSTALL_DOWNLOADING, self.target_name)
        if self.addon_type == TYPE_GITHUB:
            repo_path = installer.stage_clone(self.url, staging_dir, branch=self.branch)
            self.commit_hash = self.git_client.get_current_commit(repo_path)
            return repo_path
        return installer.stage_archive(self.wowinterface_client.artifact_location(self.metadata), staging_dir)

    def _record_fields(self):
        if self.addon_type == TYPE_GITHUB:
            return {
                'type': TYPE_GITHUB,
                'url': self.url,
                'commit_hash': self.commit_hash,
                'version': self.commit_hash[:7] if self.commit_hash else None,
                'remote_version': self.commit_hash[:7] if self.commit_hash else None,
            }
        return {
            'type': TYPE_WOWINTERFACE,
            'url': self.url,
            'name': self.metadata['name'] or None,
            'version': self.metadata['version'],
            'author': self.metadata['author'],
            'remote_version': self.metadata['version'],
        }


class InstallTukUICommand(InstallCommand):
    label = 'Install TukUI'

    def __init__(self, tracker, config_store, identifier, sub_folders=None, installer=None, git_client=None,
                 tukui_client=None):
        """Initialize a TukUI catalog install.

        Args:
            identifier: str - Catalog slug or name (e.g. 'elvui')
            sub_folders: Optional list - Folders shipped next to the primary one;
                defaults to the catalog's declared directories
        """
        super().__init__(tracker, config_store, installer=installer, git_client=git_client)
        self.identifier = identifier
        self.sub_folders = list(sub_folders) if sub_folders is not None else None
        self.tukui_client = tukui_client or TukUIClient()
        self.metadata = None

    def _prepare(self, config):
        result = self.tukui_client.resolve_metadata(self.identifier)
        if not result['success']:
            return _source_failure('TukUI', result, self.identifier)
        self.metadata = result['metadata']
        self.target_name = self.metadata['name']
        if self.sub_folders is None:
            self.sub_folders = [d for d in self.metadata['directories'] if d != self.target_name]
        return None

    def _stage(self, installer, staging_dir, context):
        context.emit(INSTALL_DOWNLOADING, self.target_name)
        return installer.stage_archive(self.tukui_client.artifact_location(self.metadata), staging_dir)

    def _plan(self, installer, staged_root):
        """The primary folder plus declared sub-folders; all must be present."""
        discovered = installer.discover(staged_root)
        available = {folder.lower(): folder for folder in discovered['folders']}
        plan = []
        for wanted in [self.target_name] + self.sub_folders:
            folder = available.get(wanted.lower())
            if folder is None:
                raise NoAddonsFoundError(f'Folder "{wanted}" not found in {self.target_name} download')
            plan.append((staged_root / folder, folder))
        return plan

    def _parent(self, installed):
        return installed[0]

    def _record_fields(self):
        return {
            'type': TYPE_TUKUI,
            'url': self.metadata['web_url'],
            'name': self.metadata['name'],
            'version': self.metadata['version'],
            'author': self.metadata['author'],
            'remote_version': self.metadata['version'],
        }


class InstallWagoCommand(InstallCommand):
    label = 'Install Wago'

    def __init__(self, tracker, config_store, identifier, channel=None, installer=None, git_client=None,
                 wago_client=None):
        """Initialize a Wago catalog install.

        Args:
            identifier: str - Wago addon id or addons.wago.io URL
            channel: Optional str - 'stable', 'beta' or 'alpha'; falls back to the
                most stable channel that has a release
        """
        super().__init__(tracker, config_store, installer=installer, git_client=git_client)
        self.identifier = identifier
        self.channel = channel
        self.wago_client = wago_client
        self.metadata = None
        self.download_url = None

    def _prepare(self, config):
        if self.wago_client is None:
            if not config.get('wago_api_key'):
                return configuration_error(installed_addons=[], error=WAGO_KEY_MISSING)
            self.wago_client = WagoClient(config['wago_api_key'])
        elif not self.wago_client.api_key:
            return configuration_error(installed_addons=[], error=WAGO_KEY_MISSING)

        result = self.wago_client.resolve_metadata(self.identifier)
        if not result['success']:
            return _source_failure('Wago', result, self.identifier)
        self.metadata = result['metadata']

        channel = best_available_channel(self.metadata, self.channel)
        if channel is None:
            return {'success': False, 'installed_addons': [], 'error': 'No releases available on Wago'}
        if self.channel and channel != self.channel:
            logger.info("No %s release for %s, using %s", self.channel, self.identifier, channel)
        self.channel = channel

        self.download_url = self.wago_client.artifact_location(self.metadata, channel)
        if not self.download_url or not is_wago_host(self.download_url):
            logger.error("Rejected Wago download URL: %s", self.download_url)
            return {'success': False, 'installed_addons': [], 'error': 'Invalid download URL from Wago'}

        # Parent is chosen from the copied folders alone
        self.target_name = ''.join(self.metadata['display_name'].split())
        return None

    def _stage(self, installer, staging_dir, context):
        context.emit(INSTALL_DOWNLOADING, self.target_name)
        return installer.stage_archive(self.download_url, staging_dir, headers=self.wago_client.download_headers())

    def _record_fields(self):
        version = self.wago_client.release_version(self.metadata, self.channel)
        return {
            'type': TYPE_WAGO,
            'url': self.metadata['website_url'],
            'name': self.metadata['display_name'],
            'version': version,
            'author': self.metadata['author'],
            'remote_version': version,
        }
