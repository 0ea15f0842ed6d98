"""
Update Checker
Looks up the remote version of a tracked addon and decides whether it is newer
"""

import logging

from addon_tracker import TYPE_GITHUB, TYPE_MANUAL, TYPE_TUKUI, TYPE_WAGO, TYPE_WOWINTERFACE
from errors import describe_source_error
from git_client import GitClient
from tukui import TukUIClient
from wago import WagoClient, best_available_channel
from wowinterface import WoWInterfaceClient

logger = logging.getLogger(__name__)

SOURCE_LABELS = {
    TYPE_GITHUB: 'GitHub',
    TYPE_WOWINTERFACE: 'WoWInterface',
    TYPE_TUKUI: 'TukUI',
    TYPE_WAGO: 'Wago',
}


def is_hash_update(local, remote):
    """Commit hashes match when either one is a prefix of the other (short vs full hash)."""
    if not remote:
        return False
    if not local:
        return True
    local = local.strip().lower()
    remote = remote.strip().lower()
    return not (local.startswith(remote) or remote.startswith(local))


def is_version_update(local, remote):
    if not remote:
        return False
    return str(remote).strip() != str(local or '').strip()


def local_git_version(record):
    return record.get('commit_hash') or record.get('version')


# Addon type -> (how to read the stored version, how to compare it)
VERSION_COMPARATORS = {
    TYPE_GITHUB: (local_git_version, is_hash_update),
    TYPE_WOWINTERFACE: (lambda record: record.get('version'), is_version_update),
    TYPE_TUKUI: (lambda record: record.get('version'), is_version_update),
    TYPE_WAGO: (lambda record: record.get('version'), is_version_update),
}


def is_update_available(record, remote):
    """Compare a record's stored version with a remote version or hash."""
    read_local, is_update = VERSION_COMPARATORS[record['type']]
    return is_update(read_local(record), remote)


def _failed(error, **fields):
    result = {
        'success': False,
        'update_available': False,
        'remote_version': None,
        'remote_hash': None,
        'metadata': None,
        'error': error,
    }
    result.update(fields)
    return result


class UpdateChecker:
    def __init__(self, git_client=None, wowinterface_client=None, tukui_client=None, wago_client=None):
        self.git_client = git_client or GitClient()
        self.wowinterface_client = wowinterface_client or WoWInterfaceClient()
        self.tukui_client = tukui_client or TukUIClient()
        self.wago_client = wago_client or WagoClient()

        self._lookups = {
            TYPE_GITHUB: self._lookup_github,
            TYPE_WOWINTERFACE: self._lookup_wowinterface,
            TYPE_TUKUI: self._lookup_tukui,
            TYPE_WAGO: self._lookup_wago,
        }

    def check(self, record):
        """Compare a record against its source.

        Args:
            record: dict - Tracked addon record

        Returns:
            dict - Check result with keys:
            - success: bool - whether the remote could be read
            - update_available: bool
            - remote_version: str - version string shown to the user
            - remote_hash: str - full commit hash (github only)
            - metadata: dict - source metadata used for staging (catalog types)
            - error: str - error message if failed
        """
        addon_type = record.get('type')
        if addon_type == TYPE_MANUAL:
            return _failed('Manually installed addons cannot be checked for updates')
        if addon_type not in self._lookups:
            return _failed(f'Unknown addon type: {addon_type}')

        remote = self._lookups[addon_type](record)
        if not remote['success']:
            return remote

        compare_with = remote['remote_hash'] if addon_type == TYPE_GITHUB else remote['remote_version']
        remote['update_available'] = is_update_available(record, compare_with)
        logger.debug("%s: remote %s, update %s", record['folder'], compare_with, remote['update_available'])
        return remote

    def _source_failure(self, addon_type, result, identifier):
        tag = result.get('error')
        return _failed(describe_source_error(SOURCE_LABELS[addon_type], tag, identifier), error_tag=tag)

    def _lookup_github(self, record):
        url = record.get('url')
        if not url:
            return _failed('Addon has no repository URL')
        remote_hash = self.git_client.get_remote_commit(url)
        if not remote_hash:
            return _failed(f'Could not read the latest commit of {url}')
        return {
            'success': True,
            'update_available': False,
            'remote_version': remote_hash[:7],
            'remote_hash': remote_hash,
            'metadata': None,
            'error': None,
        }

    def _lookup_catalog(self, record, addon_type, client, identifier):
        if not identifier:
            return _failed('Addon has no source identifier')
        result = client.resolve_metadata(identifier)
        if not result['success']:
            return self._source_failure(addon_type, result, identifier)
        metadata = result['metadata']
        return {
            'success': True,
            'update_available': False,
            'remote_version': metadata.get('version'),
            'remote_hash': None,
            'metadata': metadata,
            'error': None,
        }

    def _lookup_wowinterface(self, record):
        return self._lookup_catalog(record, TYPE_WOWINTERFACE, self.wowinterface_client, record.get('url'))

    def _lookup_tukui(self, record):
        return self._lookup_catalog(record, TYPE_TUKUI, self.tukui_client, record.get('name') or record['folder'])

    def _lookup_wago(self, record):
        identifier = record.get('url')
        result = self._lookup_catalog(record, TYPE_WAGO, self.wago_client, identifier)
        if not result['success']:
            return result
        metadata = result['metadata']
        channel = best_available_channel(metadata)
        if channel is None:
            return _failed(f'No releases available on Wago for "{identifier}"')
        metadata['channel'] = channel
        result['remote_version'] = self.wago_client.release_version(metadata, channel)
        return result
