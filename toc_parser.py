"""
TOC Parser
Reads the ## Key: Value header of addon .toc files
"""

import re
from pathlib import Path

COLOR_PAIR = re.compile(r'\|c[0-9a-fA-F]{8}(.*?)\|r')
COLOR_START = re.compile(r'\|c[0-9a-fA-F]{8}')
DEPS_SPLIT = re.compile(r',\s*|\s+')
HEADER_LINE = re.compile(r'^##\s*([^:]+?)\s*:\s*(.*)$')

# Order matters, first match wins
FLAVOR_SUFFIXES = {
    'retail': ['-Retail', '_Mainline', '-Mainline'],
    'classic': ['-Classic', '_Classic', '-Vanilla', '_Vanilla', '-Era', '_Era'],
    'cata': ['-Cata', '_Cata', '-Cataclysm', '_Cataclysm'],
}

LIBRARY_NAME_PATTERNS = [
    re.compile(r'^Lib[A-Z]'),
    re.compile(r'^Ace[A-Z0-9]'),
    re.compile(r'-\d+\.\d+$'),
    re.compile(r'^CallbackHandler'),
    re.compile(r'^LibStub$'),
]


def strip_color_codes(text):
    text = COLOR_PAIR.sub(r'\1', text)
    text = COLOR_START.sub('', text)
    return text.replace('|r', '').strip()


def split_deps(raw):
    if not raw:
        return []
    return [dep for dep in DEPS_SPLIT.split(raw.strip()) if dep]


class TocParser:
    def __init__(self, toc_path=None):
        self.toc_path = toc_path
        self.headers = {}
        self.title = None
        self.version = None
        self.author = None
        self.interface = None
        self.required_deps = []
        self.optional_deps = []
        self.x_library = False

    def parse(self, fallback_title=None):
        """Parse the file at toc_path. Returns False if the file is missing."""
        path = Path(self.toc_path)
        if not path.exists():
            return False

        # Some addons ship a UTF-8 BOM or stray latin-1 bytes
        content = path.read_text(encoding='utf-8-sig', errors='replace')
        self.parse_content(content, fallback_title or path.stem)
        return True

    def parse_content(self, content, fallback_title):
        for line in content.splitlines():
            match = HEADER_LINE.match(line.strip())
            if not match:
                continue
            key = match.group(1).strip().lower()
            # The first occurrence wins, like the game client
            self.headers.setdefault(key, match.group(2).strip())

        title = self.headers.get('title') or fallback_title
        self.title = strip_color_codes(title) or fallback_title
        self.version = self.headers.get('version') or None
        self.author = self.headers.get('author') or None
        self.interface = self.headers.get('interface') or None
        self.required_deps = split_deps(self.headers.get('dependencies') or self.headers.get('requireddeps'))
        self.optional_deps = split_deps(self.headers.get('optionaldeps'))
        self.x_library = (self.headers.get('x-library') or '').strip().lower() == 'true'
        return self

    def to_dict(self):
        return {
            'title': self.title,
            'version': self.version,
            'author': self.author,
            'interface': self.interface,
            'required_deps': list(self.required_deps),
            'optional_deps': list(self.optional_deps),
            'x_library': self.x_library,
        }


def parse_toc_content(content, fallback_title):
    """Parse TOC text and return its metadata as a dict."""
    return TocParser().parse_content(content, fallback_title).to_dict()


def select_toc_file(addon_folder, toc_files, flavor='retail'):
    """Select the TOC file that best matches the target game flavor.

    Priority: flavor-specific TOC (e.g. Addon-Retail.toc), then the base
    Addon.toc, then the first file alphabetically.

    Args:
        addon_folder: str - Addon folder name
        toc_files: list - TOC file names found in the folder
        flavor: str - 'retail', 'classic' or 'cata'

    Returns:
        tuple - (selected file name, confidence) where confidence is
        'exact', 'fallback' or 'ambiguous'
    """
    if not toc_files:
        raise ValueError(f"No TOC files found for addon: {addon_folder}")
    if len(toc_files) == 1:
        return toc_files[0], 'exact'

    lowered = {name.lower(): name for name in toc_files}
    for suffix in FLAVOR_SUFFIXES.get(flavor, []):
        candidate = f"{addon_folder}{suffix}.toc".lower()
        if candidate in lowered:
            return lowered[candidate], 'exact'

    base = f"{addon_folder}.toc".lower()
    if base in lowered:
        return lowered[base], 'fallback'

    return sorted(toc_files, key=str.lower)[0], 'ambiguous'


def detect_library_kind(folder_name, x_library=False, has_dependents=False, has_dependencies=False):
    """Classify an addon folder as 'addon' or 'library'.

    Returns:
        dict - {'kind', 'confidence' ('high'|'medium'|'low'), 'reason'}
    """
    if x_library:
        return {'kind': 'library', 'confidence': 'high', 'reason': 'TOC X-Library: true'}

    if any(pattern.search(folder_name) for pattern in LIBRARY_NAME_PATTERNS):
        return {'kind': 'library', 'confidence': 'medium', 'reason': 'Name matches library pattern'}

    if has_dependents and not has_dependencies:
        return {'kind': 'library', 'confidence': 'low', 'reason': 'Only depended on, has no dependencies'}

    return {'kind': 'addon', 'confidence': 'high', 'reason': 'Default classification'}
