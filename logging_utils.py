"""
Logging setup for applications embedding the addon manager
"""

import logging
import os
from pathlib import Path

from config_store import DEFAULT_CONFIG_DIR

DEFAULT_LOG_PATH = str(DEFAULT_CONFIG_DIR / 'addonkeeper.log')
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S%z'


def configure_logging(log_path=DEFAULT_LOG_PATH, level=logging.INFO, also_console=True):
    """Attach a file handler (and optionally a console handler) to the root logger.

    If the requested log file cannot be opened, the log goes to
    addonkeeper.log in the working directory instead. Calling this more than
    once keeps the handlers from the first call.

    Returns:
        str - The log file actually in use
    """
    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, '_addonkeeper_configured', False):
        return getattr(root, '_addonkeeper_log_path', log_path)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    chosen_path = str(log_path)
    try:
        Path(os.path.dirname(chosen_path) or '.').mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(chosen_path, encoding='utf-8')
    except OSError:
        chosen_path = str(Path.cwd() / 'addonkeeper.log')
        file_handler = logging.FileHandler(chosen_path, encoding='utf-8')
    file_handler.setFormatter(formatter)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)

    for handler in handlers:
        root.addHandler(handler)

    root._addonkeeper_configured = True
    root._addonkeeper_log_path = chosen_path

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
