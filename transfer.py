"""
Transfer
Export the tracked addon list to a JSON file and plan a re-install from one
"""

import json
import logging
from pathlib import Path

from addon_tracker import ADDON_TYPES, TYPE_MANUAL, now_iso

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
DEFAULT_EXPORT_PATH = Path.home() / 'addonkeeper-addons.json'


def export_addons(addons, output_path=DEFAULT_EXPORT_PATH):
    """Write the addon list to output_path.

    Args:
        addons: list - Tracked addon records
        output_path: str/Path - File to write

    Returns:
        dict - {'success', 'count', 'error'}
    """
    exported = []
    for addon in addons:
        entry = {
            'name': addon['name'],
            'folder': addon['folder'],
            'type': addon['type'],
            'url': addon.get('url'),
            'reinstallable': addon['type'] != TYPE_MANUAL and bool(addon.get('url')),
        }
        if addon.get('owned_folders'):
            entry['owned_folders'] = list(addon['owned_folders'])
        exported.append(entry)

    export_file = {
        'version': EXPORT_VERSION,
        'exported_at': now_iso(),
        'addons': exported,
    }

    try:
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(export_file, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error("Failed to export addons: %s", e)
        return {'success': False, 'count': 0, 'error': str(e)}

    logger.info("Exported %d addons to %s", len(exported), output_path)
    return {'success': True, 'count': len(exported), 'error': None}


def _validate_entry(entry, index):
    """Return an error message for a malformed addon entry, or None."""
    if not isinstance(entry, dict):
        return f'addons[{index}] must be an object'
    for key in ('name', 'folder'):
        if not isinstance(entry.get(key), str):
            return f'addons[{index}].{key} must be a string'
    if entry.get('type') not in ADDON_TYPES:
        return f'addons[{index}].type must be one of {", ".join(ADDON_TYPES)}'
    if entry.get('url') is not None and not isinstance(entry['url'], str):
        return f'addons[{index}].url must be a string or null'
    owned = entry.get('owned_folders')
    if owned is not None and not (isinstance(owned, list) and all(isinstance(f, str) for f in owned)):
        return f'addons[{index}].owned_folders must be a list of strings'
    if not isinstance(entry.get('reinstallable'), bool):
        return f'addons[{index}].reinstallable must be a boolean'
    return None


def parse_import_file(file_path):
    """Read and validate an export file.

    Returns:
        dict - {'success': True, 'data': {...}} or {'success': False, 'error': message}
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return {'success': False, 'error': f'File not found: {file_path}'}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except ValueError:
        logger.error("Failed to parse JSON in %s", file_path)
        return {'success': False, 'error': 'Failed to parse JSON'}
    except OSError as e:
        return {'success': False, 'error': str(e)}

    if not isinstance(data, dict):
        return {'success': False, 'error': 'Invalid format: expected an object'}
    if data.get('version') != EXPORT_VERSION:
        return {'success': False, 'error': f'Invalid format: unsupported version {data.get("version")!r}'}
    if not isinstance(data.get('exported_at'), str) or not isinstance(data.get('addons'), list):
        return {'success': False, 'error': 'Invalid format: missing exported_at or addons'}

    for index, entry in enumerate(data['addons']):
        error = _validate_entry(entry, index)
        if error:
            logger.error("Invalid import file %s: %s", file_path, error)
            return {'success': False, 'error': f'Invalid format: {error}'}

    return {'success': True, 'data': data}


def analyze_import(export_data, current_addons):
    """Split imported entries by what needs doing.

    Returns:
        dict - to_install, already_installed and manual_addons lists
    """
    installed = {addon['folder'].lower() for addon in current_addons}
    for addon in current_addons:
        installed.update(folder.lower() for folder in addon.get('owned_folders', []))

    analysis = {'to_install': [], 'already_installed': [], 'manual_addons': []}
    for entry in export_data['addons']:
        if not entry['reinstallable']:
            analysis['manual_addons'].append(entry)
        elif entry['folder'].lower() in installed:
            analysis['already_installed'].append(entry)
        else:
            analysis['to_install'].append(entry)

    logger.info(
        "Analyzed import: %d to install, %d already installed, %d manual",
        len(analysis['to_install']), len(analysis['already_installed']), len(analysis['manual_addons'])
    )
    return analysis
