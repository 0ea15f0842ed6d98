"""
Wago Client
Talks to the Wago Addons external API (bearer token, stability channels)
"""

import logging
import re
from urllib.parse import urlparse

import requests

from errors import INVALID_RESPONSE, NETWORK_ERROR, NO_API_KEY, NOT_FOUND

logger = logging.getLogger(__name__)

API_BASE = 'https://addons.wago.io'
EXTERNAL_PATH = '/api/external'
GAME_DATA_PATH = '/api/data/game'

STABLE = 'stable'
BETA = 'beta'
ALPHA = 'alpha'
CHANNELS = (STABLE, BETA, ALPHA)

RETAIL = 'retail'
GAME_VERSIONS = (RETAIL, 'classic', 'cata', 'wotlk', 'bc', 'mop')

ADDON_PATH_PATTERN = re.compile(r'/addons/([A-Za-z0-9_-]+)')


def get_addon_id_from_url(url):
    """Extract the addon id from https://addons.wago.io/addons/<id> style URLs."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not (parsed.hostname or '').endswith('wago.io'):
        return None
    match = ADDON_PATH_PATTERN.search(parsed.path)
    return match.group(1) if match else None


def is_wago_host(url):
    try:
        hostname = urlparse(url).hostname or ''
    except ValueError:
        return False
    return hostname == 'wago.io' or hostname.endswith('.wago.io')


def _is_valid_addon(data):
    return (
        isinstance(data, dict)
        and isinstance(data.get('id'), str)
        and isinstance(data.get('display_name'), str)
        and isinstance(data.get('releases'), dict)
    )


def _normalize_release(release):
    # The API has shipped the download URL under both keys
    return {
        'label': release.get('label'),
        'download_url': release.get('download_link') or release.get('link'),
        'created_at': release.get('created_at'),
    }


def _addon_metadata(data):
    releases = {}
    for channel in CHANNELS:
        release = data['releases'].get(channel)
        if isinstance(release, dict):
            releases[channel] = _normalize_release(release)

    authors = data.get('authors') or []
    return {
        'source': 'wago',
        'id': data['id'],
        'display_name': data['display_name'],
        'author': data.get('owner') or (authors[0] if authors else None),
        'website_url': data.get('website_url') or f"{API_BASE}/addons/{data['id']}",
        'releases': releases,
    }


def best_available_channel(metadata, preferred=None):
    """Pick the release channel to install.

    Args:
        metadata: dict - Metadata from resolve_metadata
        preferred: Optional str - Channel asked for by the user

    Returns:
        str - The preferred channel if it has a release, otherwise the most
        stable channel that does; None when there are no releases at all
    """
    releases = metadata.get('releases', {})
    if preferred and releases.get(preferred):
        return preferred
    for channel in CHANNELS:
        if releases.get(channel):
            return channel
    return None


class WagoClient:
    def __init__(self, api_key=None, session=None, timeout=10):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, accept='application/json'):
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Accept': accept,
        }

    def download_headers(self):
        return self._headers(accept='application/octet-stream')

    def _get_json(self, api_url, subject, headers=None, params=None):
        """GET api_url and decode the JSON body.

        Returns:
            dict - {'success': True, 'data': ...} or {'success': False, 'error': tag}
        """
        try:
            response = self.session.get(api_url, headers=headers or {'Accept': 'application/json'},
                                        params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Wago request failed: %s", e)
            return {'success': False, 'error': NETWORK_ERROR}

        if response.status_code == 404:
            return {'success': False, 'error': NOT_FOUND}
        if response.status_code in (401, 403):
            logger.error("Wago rejected the API key (%s)", response.status_code)
            return {'success': False, 'error': NO_API_KEY}
        if response.status_code != 200:
            logger.error("Wago API returned %s for %s", response.status_code, subject)
            return {'success': False, 'error': NETWORK_ERROR}

        try:
            return {'success': True, 'data': response.json()}
        except ValueError:
            return {'success': False, 'error': INVALID_RESPONSE}

    def resolve_metadata(self, identifier, game_version=None):
        """Fetch details for an addon id or Wago URL.

        Returns:
            dict - {'success': True, 'metadata': {...}} or {'success': False, 'error': tag}
        """
        if not self.api_key:
            return {'success': False, 'error': NO_API_KEY}

        addon_id = identifier
        if 'wago.io' in str(identifier):
            addon_id = get_addon_id_from_url(identifier)
        if not addon_id or not str(addon_id).strip():
            return {'success': False, 'error': NOT_FOUND}
        addon_id = str(addon_id).strip()

        api_url = f"{API_BASE}{EXTERNAL_PATH}/addons/{addon_id}"
        params = {'game_version': game_version} if game_version else None
        logger.info("Fetching Wago details for %s", addon_id)

        result = self._get_json(api_url, addon_id, headers=self._headers(), params=params)
        if not result['success']:
            return result
        data = result['data']

        if not _is_valid_addon(data):
            logger.error("Invalid Wago addon response for %s", addon_id)
            return {'success': False, 'error': INVALID_RESPONSE}
        return {'success': True, 'metadata': _addon_metadata(data)}

    def search_addons(self, query, game_version=RETAIL, stability=None):
        """Search the Wago catalog.

        Args:
            query: str - Free text search
            game_version: str - One of GAME_VERSIONS
            stability: Optional str - Restrict results to one release channel

        Returns:
            dict - {'success': True, 'addons': [metadata, ...]} or {'success': False, 'error': tag}
        """
        if not self.api_key:
            return {'success': False, 'error': NO_API_KEY}

        params = {'query': query, 'game_version': game_version}
        if stability:
            params['stability'] = stability
        logger.info("Searching Wago for %r (%s)", query, game_version)

        result = self._get_json(f"{API_BASE}{EXTERNAL_PATH}/addons/_search", query,
                                headers=self._headers(), params=params)
        if not result['success']:
            return result
        data = result['data']

        if not isinstance(data, dict) or not isinstance(data.get('data'), list):
            logger.error("Invalid Wago search response for %r", query)
            return {'success': False, 'error': INVALID_RESPONSE}

        addons = [_addon_metadata(item) for item in data['data'] if _is_valid_addon(item)]
        skipped = len(data['data']) - len(addons)
        if skipped:
            logger.warning("Skipped %d malformed Wago search results", skipped)
        return {'success': True, 'addons': addons}

    def get_game_data(self):
        """Fetch Wago's game metadata (patches, TOC suffixes, stability values).

        Needs no API key.

        Returns:
            dict - {'success': True, 'game_data': {...}} or {'success': False, 'error': tag}
        """
        result = self._get_json(f"{API_BASE}{GAME_DATA_PATH}", 'game data')
        if not result['success']:
            return result
        data = result['data']

        if not isinstance(data, dict) or not isinstance(data.get('stability_values'), list):
            logger.error("Invalid Wago game data response")
            return {'success': False, 'error': INVALID_RESPONSE}
        return {
            'success': True,
            'game_data': {
                'stability_values': data['stability_values'],
                'patches': data.get('patches') or {},
                'toc_suffixes': data.get('toc_suffixes') or {},
                'live_patches': data.get('live_patches') or [],
            }
        }

    def artifact_location(self, metadata, channel=None):
        """Download URL for the given channel, or None if that release has none."""
        channel = channel or best_available_channel(metadata)
        release = metadata.get('releases', {}).get(channel)
        if not release:
            return None
        return release.get('download_url')

    def release_version(self, metadata, channel=None):
        channel = channel or best_available_channel(metadata)
        release = metadata.get('releases', {}).get(channel)
        return release.get('label') if release else None
