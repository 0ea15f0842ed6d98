"""
Config Store
Reads and writes settings.json, the user's configuration for the addon manager
"""

import copy
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

NOT_CONFIGURED = 'NOT_CONFIGURED'
DEFAULT_CONFIG_DIR = Path.home() / '.config' / 'addonkeeper'

DEFAULTS = {
    'dest_dir': NOT_CONFIGURED,
    'concurrency_limit': 4,
    'check_interval': 3600,
    'flavor': 'retail',
    'wago_api_key': '',
    'backup': {
        'enabled': True,
        'min_interval_minutes': 60,
        'retention': 5,
    },
    'repositories': [],
}


def is_path_configured(path):
    """Check whether a destination path has been set by the user."""
    return bool(path) and str(path).strip() != '' and path != NOT_CONFIGURED


class ConfigStore:
    def __init__(self, config_dir=None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.settings_file = self.config_dir / 'settings.json'
        self.settings = self._load_settings()

    def _load_settings(self):
        if not self.settings_file.exists():
            return {}
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Could not read %s, using defaults: %s", self.settings_file, e)
            return {}
        return data if isinstance(data, dict) else {}

    def save_settings(self):
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.settings_file, 'w', encoding='utf-8') as f:
            json.dump(self.settings, f, indent=2, ensure_ascii=False)

    @property
    def has_config_file(self):
        return self.settings_file.exists()

    def get(self):
        """Get the merged configuration (defaults, file, then environment)"""
        config = copy.deepcopy(DEFAULTS)
        for key, value in self.settings.items():
            if key == 'backup' and isinstance(value, dict):
                config['backup'].update(value)
            else:
                config[key] = value

        if not config.get('wago_api_key'):
            config['wago_api_key'] = os.environ.get('WAGO_API_KEY', '')

        try:
            config['concurrency_limit'] = max(1, int(config['concurrency_limit']))
        except (TypeError, ValueError):
            config['concurrency_limit'] = DEFAULTS['concurrency_limit']
        return config

    def get_setting(self, key, default=None):
        return self.get().get(key, default)

    def set(self, key, value):
        self.settings[key] = value
        self.save_settings()

    def remove_repository(self, name):
        """Drop an external repository reference by name.

        Returns:
            dict - The removed entry, or None if there was none
        """
        repositories = list(self.settings.get('repositories', []))
        for index, repo in enumerate(repositories):
            if isinstance(repo, dict) and repo.get('name') == name:
                removed = repositories.pop(index)
                self.set('repositories', repositories)
                return removed
        return None

    def add_repository(self, entry):
        repositories = list(self.settings.get('repositories', []))
        repositories.append(entry)
        self.set('repositories', repositories)
