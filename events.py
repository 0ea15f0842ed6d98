"""
Events
Lifecycle event names emitted by commands and the context objects that carry them
"""

import logging

logger = logging.getLogger(__name__)

EVENTS_VERSION = 1

SCAN_START = 'scan:start'
SCAN_PROGRESS = 'scan:progress'
SCAN_COMPLETE = 'scan:complete'
UPDATE_CHECK_START = 'addon:update-check:start'
UPDATE_CHECK_COMPLETE = 'addon:update-check:complete'
INSTALL_START = 'addon:install:start'
INSTALL_DOWNLOADING = 'addon:install:downloading'
INSTALL_EXTRACTING = 'addon:install:extracting'
INSTALL_COPYING = 'addon:install:copying'
INSTALL_COMPLETE = 'addon:install:complete'
REMOVE_START = 'addon:remove:start'
REMOVE_COMPLETE = 'addon:remove:complete'
FOLDER_OWNERSHIP = 'install:folder_ownership'
ERROR = 'error'

ALL_EVENTS = (
    SCAN_START, SCAN_PROGRESS, SCAN_COMPLETE,
    UPDATE_CHECK_START, UPDATE_CHECK_COMPLETE,
    INSTALL_START, INSTALL_DOWNLOADING, INSTALL_EXTRACTING, INSTALL_COPYING, INSTALL_COMPLETE,
    REMOVE_START, REMOVE_COMPLETE,
    FOLDER_OWNERSHIP, ERROR,
)


class NullContext:
    """Context that drops every event. Used when nobody is listening."""

    def emit(self, event, *args):
        pass


NULL_CONTEXT = NullContext()


class ListenerContext:
    """Context that forwards events to a list of listener callables.

    Each listener is called as listener(event, *args). A listener that raises
    is logged and skipped so it can never break the running command.
    """

    def __init__(self, listeners):
        self.listeners = list(listeners)

    def emit(self, event, *args):
        for listener in self.listeners:
            try:
                listener(event, *args)
            except Exception:
                logger.exception("Listener failed while handling %s", event)


class RecordingContext:
    def __init__(self):
        self.events = []

    def emit(self, event, *args):
        self.events.append((event,) + args)

    def names(self):
        return [e[0] for e in self.events]
