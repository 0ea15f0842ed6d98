"""
Commands
Base class shared by the install, update, remove and scan commands
"""

import logging

from config_store import is_path_configured
from events import NULL_CONTEXT

logger = logging.getLogger(__name__)

DEST_NOT_CONFIGURED = 'WoW AddOns directory is not configured. Please set it in Settings.'


class Command:
    """A unit of work with an execute/undo contract.

    execute(context) returns a result dict and never raises for expected
    failures. undo(context) compensates for partial work done by execute;
    failures inside undo are logged and swallowed.
    """

    def execute(self, context=NULL_CONTEXT):
        raise NotImplementedError

    def undo(self, context=NULL_CONTEXT):
        pass

    def _safe_undo(self, context):
        try:
            self.undo(context)
        except Exception:
            logger.exception("%s rollback failed", type(self).__name__)


def configuration_error(**fields):
    """Failure result for an unset destination directory."""
    result = {'success': False, 'error': DEST_NOT_CONFIGURED, 'error_type': 'configuration'}
    result.update(fields)
    return result


def dest_configured(config):
    return is_path_configured(config.get('dest_dir'))
