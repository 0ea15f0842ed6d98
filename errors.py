"""
Errors
Exception types raised inside commands and the error tags returned by source clients
"""

# Tags carried by failed source lookups: {'success': False, 'error': NOT_FOUND}
NOT_FOUND = 'not_found'
NETWORK_ERROR = 'network_error'
INVALID_RESPONSE = 'invalid_response'
NO_API_KEY = 'no_api_key'

SOURCE_ERRORS = (NOT_FOUND, NETWORK_ERROR, INVALID_RESPONSE, NO_API_KEY)


class AddonKeeperError(Exception):
    """Base class for errors raised while installing or updating addons."""


class DuplicateAddonError(AddonKeeperError):
    """An addon record with the same folder already exists."""

    def __init__(self, folder):
        super().__init__(f'Addon "{folder}" is already tracked')
        self.folder = folder


class DownloadError(AddonKeeperError):
    pass


class ExtractionError(AddonKeeperError):
    pass


class CloneError(AddonKeeperError):
    pass


class NoAddonsFoundError(AddonKeeperError):
    pass


def describe_source_error(source, error, identifier):
    """Build a readable message for a tagged source failure.

    Args:
        source: str - Source label (e.g. 'Wago')
        error: str - One of SOURCE_ERRORS
        identifier: str - Addon id, slug or URL that was looked up

    Returns:
        str - Human readable message
    """
    if error == NOT_FOUND:
        return f'Addon "{identifier}" not found on {source}'
    if error == NO_API_KEY:
        return f'{source} API key required'
    if error == INVALID_RESPONSE:
        return f'Unexpected response from {source} for "{identifier}"'
    return f'Failed to fetch addon details from {source}'
