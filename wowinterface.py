"""
WoWInterface Client
Looks up addon details through the MMOUI file details API
"""

import logging
import re

import requests

from errors import INVALID_RESPONSE, NETWORK_ERROR, NOT_FOUND

logger = logging.getLogger(__name__)

API_BASE = 'https://api.mmoui.com/v3/game/WOW/filedetails'
ADDON_ID_PATTERN = re.compile(r'info(\d+)')


def get_addon_id_from_url(url):
    """Extract the numeric addon id from a WoWInterface URL.

    Matches https://www.wowinterface.com/downloads/info<id>-<name>.html
    and https://www.wowinterface.com/downloads/info<id>.html
    """
    match = ADDON_ID_PATTERN.search(url or '')
    return match.group(1) if match else None


class WoWInterfaceClient:
    def __init__(self, session=None, timeout=10):
        self.session = session or requests.Session()
        self.timeout = timeout

    def resolve_metadata(self, identifier):
        """Fetch details for an addon id or URL.

        Args:
            identifier: str - Numeric id or a wowinterface.com URL

        Returns:
            dict - {'success': True, 'metadata': {...}} or {'success': False, 'error': tag}
        """
        addon_id = identifier if str(identifier).isdigit() else get_addon_id_from_url(identifier)
        if not addon_id:
            return {'success': False, 'error': NOT_FOUND}

        api_url = f"{API_BASE}/{addon_id}.json"
        logger.info("Fetching WoWInterface details for %s", addon_id)

        try:
            response = self.session.get(api_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("WoWInterface request failed: %s", e)
            return {'success': False, 'error': NETWORK_ERROR}

        if response.status_code == 404:
            return {'success': False, 'error': NOT_FOUND}
        if response.status_code != 200:
            logger.error("WoWInterface API returned %s for %s", response.status_code, addon_id)
            return {'success': False, 'error': NETWORK_ERROR}

        try:
            data = response.json()
        except ValueError:
            return {'success': False, 'error': INVALID_RESPONSE}

        if isinstance(data, dict) and 'ERROR' in data:
            message = str(data['ERROR'])
            logger.error("WoWInterface API error: %s", message)
            if 'No AddOn found' in message:
                return {'success': False, 'error': NOT_FOUND}
            return {'success': False, 'error': INVALID_RESPONSE}

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return {'success': False, 'error': INVALID_RESPONSE}

        details = data[0]
        if not details.get('UIDownload'):
            return {'success': False, 'error': INVALID_RESPONSE}

        return {
            'success': True,
            'metadata': {
                'source': 'wowinterface',
                'id': str(details.get('UID', addon_id)),
                'name': details.get('UIName') or '',
                'file_name': details.get('UIFileName') or '',
                'version': details.get('UIVersion'),
                'author': details.get('UIAuthorName'),
                'download_url': details['UIDownload'],
            }
        }

    def artifact_location(self, metadata, channel=None):
        return metadata['download_url']
