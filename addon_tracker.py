"""
Addon Tracker
Manages the addons.json file that records every independently tracked addon
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from errors import DuplicateAddonError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

TYPE_GITHUB = 'github'
TYPE_WOWINTERFACE = 'wowinterface'
TYPE_TUKUI = 'tukui'
TYPE_WAGO = 'wago'
TYPE_MANUAL = 'manual'
ADDON_TYPES = (TYPE_GITHUB, TYPE_WOWINTERFACE, TYPE_TUKUI, TYPE_WAGO, TYPE_MANUAL)

KIND_ADDON = 'addon'
KIND_LIBRARY = 'library'

LIST_FIELDS = ('owned_folders', 'required_deps', 'optional_deps', 'embedded_libs')

# Renamed keys from schema version 1
LEGACY_KEYS = {
    'git_commit': 'commit_hash',
    'ownedFolders': 'owned_folders',
}


def now_iso():
    return datetime.now(timezone.utc).isoformat()


def _record_defaults():
    return {
        'folder': None,
        'name': None,
        'type': TYPE_MANUAL,
        'url': None,
        'version': None,
        'commit_hash': None,
        'author': None,
        'interface': None,
        'owned_folders': [],
        'kind': KIND_ADDON,
        'kind_override': False,
        'flavor': 'retail',
        'required_deps': [],
        'optional_deps': [],
        'embedded_libs': [],
        'install_date': None,
        'last_updated': None,
        'last_checked': None,
        'remote_version': None,
    }


RECORD_FIELDS = tuple(_record_defaults().keys())


def new_addon_record(folder, **fields):
    """Build a complete addon record with defaults for every missing field.

    Args:
        folder: str - On-disk folder name, the unique key
        **fields: Any other record fields

    Returns:
        dict - Normalized record
    """
    record = _record_defaults()
    record.update(fields)
    record['folder'] = folder
    if not record['name']:
        record['name'] = folder
    timestamp = now_iso()
    if not record['install_date']:
        record['install_date'] = timestamp
    if not record['last_updated']:
        record['last_updated'] = timestamp
    return _normalize(record)


def _normalize(record):
    """Coerce set-valued fields into sorted unique lists and enforce self-exclusion."""
    for key in LIST_FIELDS:
        values = record.get(key) or []
        record[key] = sorted({str(v) for v in values if v})
    folder = record.get('folder')
    if folder in record['owned_folders']:
        record['owned_folders'].remove(folder)
    if record.get('type') not in ADDON_TYPES:
        raise ValueError(f"Unknown addon type: {record.get('type')}")
    record['kind_override'] = bool(record.get('kind_override'))
    return record


class AddonTracker:
    def __init__(self, config_dir):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.tracker_file = self.config_dir / 'addons.json'
        self._lock = threading.RLock()
        self.data = self._load()

    def _load(self):
        """Load addons from addons.json, migrating older layouts"""
        if not self.tracker_file.exists():
            return self._create_empty_structure()

        try:
            with open(self.tracker_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            corrupt = self.tracker_file.with_name(self.tracker_file.name + '.corrupt')
            logger.error("Could not read %s (%s); moving it to %s", self.tracker_file, e, corrupt)
            os.replace(self.tracker_file, corrupt)
            return self._create_empty_structure()

        if not isinstance(data, dict) or not isinstance(data.get('addons'), dict):
            logger.error("Tracker file %s has an unexpected layout, starting empty", self.tracker_file)
            return self._create_empty_structure()

        if data.get('schema_version', 1) < SCHEMA_VERSION:
            data = self._migrate(data)
        return data

    def _create_empty_structure(self):
        return {
            'schema_version': SCHEMA_VERSION,
            'last_updated': now_iso(),
            'addons': {},
        }

    def _migrate(self, data):
        """Bring an older file up to SCHEMA_VERSION without dropping any data."""
        old_version = data.get('schema_version', 1)
        migrated = {}
        for folder, raw in data['addons'].items():
            record = dict(raw)
            for old_key, new_key in LEGACY_KEYS.items():
                if old_key in record:
                    value = record.pop(old_key)
                    record.setdefault(new_key, value)
            defaults = _record_defaults()
            defaults.update(record)
            defaults['folder'] = folder
            if defaults.get('type') not in ADDON_TYPES:
                defaults['type'] = TYPE_MANUAL
            migrated[folder] = _normalize(defaults)

        data['addons'] = migrated
        data['schema_version'] = SCHEMA_VERSION
        logger.info("Migrated %s from schema %s to %s", self.tracker_file, old_version, SCHEMA_VERSION)
        self._write(data)
        return data

    def _write(self, data):
        data['last_updated'] = now_iso()
        fd, tmp_path = tempfile.mkstemp(prefix='.addons-', suffix='.json', dir=self.config_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.tracker_file)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def save(self):
        """Save addons to addons.json"""
        with self._lock:
            self._write(self.data)

    def get_all(self):
        """Get all tracked addons sorted by display name"""
        with self._lock:
            records = [_copy(r) for r in self.data['addons'].values()]
        return sorted(records, key=lambda r: (r['name'] or r['folder']).lower())

    def get_by_folder(self, folder):
        with self._lock:
            record = self.data['addons'].get(folder)
            return _copy(record) if record else None

    def exists(self, folder):
        with self._lock:
            return folder in self.data['addons']

    def add_addon(self, record):
        """Insert a new record. Raises DuplicateAddonError if the folder is taken."""
        record = new_addon_record(record['folder'], **{k: v for k, v in record.items() if k != 'folder'})
        with self._lock:
            if record['folder'] in self.data['addons']:
                raise DuplicateAddonError(record['folder'])
            self.data['addons'][record['folder']] = record
            self.save()

    def upsert_addon(self, record):
        """Insert a record or replace the existing one with the same folder."""
        record = new_addon_record(record['folder'], **{k: v for k, v in record.items() if k != 'folder'})
        with self._lock:
            self.data['addons'][record['folder']] = record
            self.save()

    def update_addon(self, folder, updates):
        """Update specific fields of an addon.

        Args:
            folder: str - Folder of the addon to change
            updates: dict - Fields to change; 'folder' is ignored

        Returns:
            bool - True if the addon exists and was saved
        """
        unknown = set(updates) - set(RECORD_FIELDS)
        if unknown:
            raise ValueError(f"Unknown addon fields: {', '.join(sorted(unknown))}")

        with self._lock:
            record = self.data['addons'].get(folder)
            if record is None:
                return False
            changed = dict(record)
            changed.update({k: v for k, v in updates.items() if k != 'folder'})
            self.data['addons'][folder] = _normalize(changed)
            self.save()
            return True

    def remove_addon(self, folder):
        """Remove an addon from the tracker"""
        with self._lock:
            if folder in self.data['addons']:
                del self.data['addons'][folder]
                self.save()
                return True
            return False

    def get_owner_of(self, folder):
        """Return the record whose owned_folders contains folder, if any."""
        with self._lock:
            for record in self.data['addons'].values():
                if folder in record['owned_folders']:
                    return _copy(record)
        return None

    def is_owned(self, folder):
        return self.get_owner_of(folder) is not None

    def get_dependents(self, folder):
        """Records that list folder as a required or optional dependency"""
        with self._lock:
            return [
                _copy(r) for r in self.data['addons'].values()
                if r['folder'] != folder and (folder in r['required_deps'] or folder in r['optional_deps'])
            ]

    def get_required_dependents(self, folder):
        with self._lock:
            return [
                _copy(r) for r in self.data['addons'].values()
                if r['folder'] != folder and folder in r['required_deps']
            ]

    def count(self):
        with self._lock:
            return len(self.data['addons'])


def _copy(record):
    copied = dict(record)
    for key in LIST_FIELDS:
        copied[key] = list(record[key])
    return copied
