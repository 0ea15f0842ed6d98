"""
Ownership Resolver
Decides which folder of a multi-folder release is the parent addon

Each selector takes (folders, target_name, display_name) and returns a folder
name or None. Selectors run in PARENT_SELECTORS order and the first one that
returns a folder wins.
"""

import os

PREFIX_MAJORITY = 0.5


def _by_length(folders):
    return sorted(folders, key=lambda name: (len(name), name))


def select_single_folder(folders, target_name, display_name=None):
    if len(folders) == 1:
        return folders[0]
    return None


def select_target_name_match(folders, target_name, display_name=None):
    if not target_name:
        return None
    target = target_name.lower()
    for folder in folders:
        if folder.lower() == target:
            return folder
    return None


def select_display_name_match(folders, target_name, display_name=None):
    if not display_name:
        return None
    wanted = display_name.lower()
    for folder in folders:
        if folder.lower() == wanted:
            return folder
    return None


def select_prefix_majority(folders, target_name, display_name=None):
    """The shortest folder, if it prefixes at least half of all folders (itself included)."""
    shortest = _by_length(folders)[0]
    prefixed = sum(1 for folder in folders if folder.startswith(shortest))
    if prefixed / len(folders) >= PREFIX_MAJORITY:
        return shortest
    return None


def select_target_substring(folders, target_name, display_name=None):
    if not target_name:
        return None
    target = target_name.lower()
    candidates = [f for f in folders if f.lower() in target or target in f.lower()]
    if candidates:
        return _by_length(candidates)[0]
    return None


def select_shortest(folders, target_name, display_name=None):
    return _by_length(folders)[0]


PARENT_SELECTORS = (
    select_single_folder,
    select_target_name_match,
    select_display_name_match,
    select_prefix_majority,
    select_target_substring,
    select_shortest,
)


def resolve_parent(folders, target_name, display_name=None):
    """Pick the parent folder of a release.

    Args:
        folders: list - Installed folder names
        target_name: str - Name the release is expected to install as
        display_name: Optional str - Secondary name provided by the source

    Returns:
        str - The parent folder
    """
    folders = list(dict.fromkeys(folders))
    if not folders:
        raise ValueError("No folders provided")

    for selector in PARENT_SELECTORS:
        parent = selector(folders, target_name, display_name)
        if parent:
            return parent
    return select_shortest(folders, target_name, display_name)


def split_ownership(folders, parent):
    """Folders owned by parent: everything installed except the parent itself."""
    return sorted({f for f in folders if f != parent})


def strip_archive_extension(file_name):
    """'Details-Damage-Meter.zip' -> 'Details-Damage-Meter'"""
    base, ext = os.path.splitext(file_name or '')
    if ext.lower() in ('.zip', '.rar', '.7z'):
        return base
    return file_name or ''
