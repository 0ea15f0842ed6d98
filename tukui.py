"""
TukUI Client
Reads the TukUI addon catalog
"""

import logging
import threading
import time

import requests

from errors import INVALID_RESPONSE, NETWORK_ERROR, NOT_FOUND

logger = logging.getLogger(__name__)

API_URL = 'https://api.tukui.org/v1/addons'
CACHE_DURATION = 5 * 60


class TukUIClient:
    def __init__(self, session=None, timeout=10):
        self.session = session or requests.Session()
        self.timeout = timeout
        self._cache = None
        self._last_fetch = 0
        self._lock = threading.Lock()

    def get_addons(self, force=False):
        """Fetch the catalog, reusing a cached copy for five minutes.

        Returns:
            dict - {'success': True, 'addons': [...]} or {'success': False, 'error': tag}
        """
        with self._lock:
            if not force and self._cache is not None and time.monotonic() - self._last_fetch < CACHE_DURATION:
                return {'success': True, 'addons': self._cache}

            logger.info("Fetching TukUI catalog from %s", API_URL)
            try:
                response = self.session.get(API_URL, timeout=self.timeout)
            except requests.RequestException as e:
                logger.error("TukUI request failed: %s", e)
                return {'success': False, 'error': NETWORK_ERROR}

            if response.status_code != 200:
                logger.error("TukUI API returned %s", response.status_code)
                return {'success': False, 'error': NETWORK_ERROR}

            try:
                data = response.json()
            except ValueError:
                return {'success': False, 'error': INVALID_RESPONSE}

            if not isinstance(data, list):
                logger.error("Invalid TukUI catalog format")
                return {'success': False, 'error': INVALID_RESPONSE}

            self._cache = [a for a in data if isinstance(a, dict)]
            self._last_fetch = time.monotonic()
            return {'success': True, 'addons': self._cache}

    def resolve_metadata(self, identifier):
        """Find a catalog entry by slug or name (case-insensitive)."""
        catalog = self.get_addons()
        if not catalog['success']:
            return catalog

        target = str(identifier).lower()
        for addon in catalog['addons']:
            slug = str(addon.get('slug', '')).lower()
            name = str(addon.get('name', '')).lower()
            if target in (slug, name):
                if not addon.get('url'):
                    return {'success': False, 'error': INVALID_RESPONSE}
                directories = [d for d in addon.get('directories') or [] if d]
                return {
                    'success': True,
                    'metadata': {
                        'source': 'tukui',
                        'slug': addon.get('slug'),
                        'name': addon.get('name') or identifier,
                        'version': addon.get('version'),
                        'author': addon.get('author'),
                        'download_url': addon['url'],
                        'web_url': addon.get('web_url'),
                        'directories': directories,
                    }
                }

        return {'success': False, 'error': NOT_FOUND}

    def artifact_location(self, metadata, channel=None):
        return metadata['download_url']
