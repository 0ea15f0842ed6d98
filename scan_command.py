"""
Scan Command
Registers addon folders found in the AddOns directory and refreshes their TOC metadata
"""

import logging
from pathlib import Path

from addon_tracker import KIND_LIBRARY, TYPE_GITHUB, TYPE_MANUAL, new_addon_record
from commands import Command, dest_configured
from events import ERROR, NULL_CONTEXT, SCAN_COMPLETE, SCAN_PROGRESS, SCAN_START
from folder_structure_detector import FolderStructureDetector
from git_client import GitClient
from toc_parser import TocParser, detect_library_kind, select_toc_file

logger = logging.getLogger(__name__)

# Types whose stored version comes from the TOC; git checkouts always do
TOC_VERSIONED_TYPES = (TYPE_MANUAL,)


class ScanCommand(Command):
    def __init__(self, tracker, config_store, specific_folders=None, git_client=None, detector=None):
        """Initialize scan.

        Args:
            tracker: AddonTracker
            config_store: ConfigStore
            specific_folders: Optional list - Only scan these folder names
            git_client: Optional GitClient - Reads hashes of git checkouts
            detector: Optional FolderStructureDetector
        """
        self.tracker = tracker
        self.config_store = config_store
        self.specific_folders = set(specific_folders) if specific_folders is not None else None
        self.git_client = git_client or GitClient()
        self.detector = detector or FolderStructureDetector()
        self._x_library = {}

    def execute(self, context=NULL_CONTEXT):
        context.emit(SCAN_START)
        config = self.config_store.get()
        flavor = config.get('flavor', 'retail')

        if not dest_configured(config) or not Path(config['dest_dir']).is_dir():
            logger.info("AddOns directory not found: %s", config.get('dest_dir'))
            context.emit(SCAN_COMPLETE, 0)
            return 0

        addons_dir = Path(config['dest_dir'])
        count = 0
        scanned = []

        for addon_dir in sorted(addons_dir.iterdir(), key=lambda p: p.name):
            folder = addon_dir.name
            if not addon_dir.is_dir() or folder.startswith('.'):
                continue
            if self.specific_folders is not None and folder not in self.specific_folders:
                continue

            toc_files = self.detector.find_toc_files(addon_dir)
            if not toc_files:
                continue

            owner = self.tracker.get_owner_of(folder)
            if owner and owner['folder'] != folder:
                logger.debug("Skipping %s, owned by %s", folder, owner['folder'])
                continue

            context.emit(SCAN_PROGRESS, folder)
            scanned.append(folder)
            try:
                if self._scan_folder(addon_dir, toc_files, flavor):
                    count += 1
            except Exception as e:
                logger.exception("Failed to scan %s", folder)
                context.emit(ERROR, f"Scan:{folder}", str(e))

        self._classify_libraries(scanned)
        context.emit(SCAN_COMPLETE, count)
        return count

    def _scan_folder(self, addon_dir, toc_files, flavor):
        """Insert or refresh one folder. Returns True when a new record was created."""
        folder = addon_dir.name
        selected, _confidence = select_toc_file(folder, toc_files, flavor)
        toc = TocParser(addon_dir / selected)
        toc.parse(fallback_title=folder)
        self._x_library[folder] = toc.x_library

        embedded_libs = self.detector.detect_embedded_libs(addon_dir)

        is_git = self.detector.has_git_repository(addon_dir)
        git_hash = self.git_client.get_current_commit(addon_dir) if is_git else None
        version = toc.version or (git_hash[:7] if git_hash else 'Unknown')

        existing = self.tracker.get_by_folder(folder)
        if existing is None:
            self.tracker.add_addon(new_addon_record(
                folder,
                name=toc.title,
                type=TYPE_GITHUB if git_hash else TYPE_MANUAL,
                url=self.git_client.get_remote_url(addon_dir) if git_hash else None,
                version=version,
                commit_hash=git_hash,
                author=toc.author,
                interface=toc.interface,
                flavor=flavor,
                required_deps=toc.required_deps,
                optional_deps=toc.optional_deps,
                embedded_libs=embedded_libs,
            ))
            return True

        updates = {}
        # Only ever upgrade manual -> github, never downgrade a tracked source
        if git_hash and existing['type'] == TYPE_MANUAL:
            updates['type'] = TYPE_GITHUB
            if not existing['url']:
                updates['url'] = self.git_client.get_remote_url(addon_dir)
        if existing['type'] in TOC_VERSIONED_TYPES or git_hash:
            if version and existing['version'] != version:
                updates['version'] = version
        if git_hash and existing['commit_hash'] != git_hash:
            updates['commit_hash'] = git_hash
        if toc.author and existing['author'] != toc.author:
            updates['author'] = toc.author
        if toc.interface and existing['interface'] != toc.interface:
            updates['interface'] = toc.interface
        if sorted(set(toc.required_deps)) != existing['required_deps']:
            updates['required_deps'] = toc.required_deps
        if sorted(set(toc.optional_deps)) != existing['optional_deps']:
            updates['optional_deps'] = toc.optional_deps
        if embedded_libs != existing['embedded_libs']:
            updates['embedded_libs'] = embedded_libs

        if updates:
            self.tracker.update_addon(folder, updates)
        return False

    def _classify_libraries(self, folders):
        """Mark likely libraries. Skips addons whose kind the user set by hand."""
        for folder in folders:
            addon = self.tracker.get_by_folder(folder)
            if not addon or addon['kind_override'] or addon['kind'] == KIND_LIBRARY:
                continue

            has_dependents = bool(self.tracker.get_dependents(folder))
            has_dependencies = bool(addon['required_deps'] or addon['optional_deps'])
            result = detect_library_kind(
                folder,
                x_library=self._x_library.get(folder, False),
                has_dependents=has_dependents,
                has_dependencies=has_dependencies,
            )
            if result['kind'] == KIND_LIBRARY and result['confidence'] != 'low':
                self.tracker.update_addon(folder, {'kind': KIND_LIBRARY})
                logger.info("Classified %s as library: %s", folder, result['reason'])
