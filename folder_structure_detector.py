"""
Folder Structure Detector
Finds installable addon folders in a staged download and embedded libraries inside an addon
"""

from pathlib import Path

TOC_SUFFIX = '.toc'

# Directory names addons use to bundle their libraries
EMBEDDED_LIB_DIRS = ['Libs', 'libs', 'Lib', 'lib', 'Libraries']


def _is_hidden(path):
    return path.name.startswith('.') or path.name == '__MACOSX'


class FolderStructureDetector:
    def detect_addon_folders(self, source_path):
        """Detect installable units in a staged tree.

        A first-level directory is a candidate when it contains a .toc file at
        any depth; TOC files nested deeper (embedded libraries) do not make
        their own candidates. A .toc file at the root denotes a single loose
        addon named after the file.

        Args:
            source_path: Path to the staged tree

        Returns:
            A dict with:
            - folders: list - first-level folder names, sorted
            - root_tocs: list - addon names taken from .toc files at the root
        """
        source_path = Path(source_path)
        folders = []
        for item in sorted(source_path.iterdir(), key=lambda p: p.name):
            if not item.is_dir() or _is_hidden(item):
                continue
            if self._contains_toc(item):
                folders.append(item.name)

        root_tocs = sorted(
            toc.stem for toc in source_path.glob(f'*{TOC_SUFFIX}') if toc.is_file()
        )
        return {'folders': folders, 'root_tocs': root_tocs}

    def _contains_toc(self, folder):
        for toc in folder.rglob(f'*{TOC_SUFFIX}'):
            relative = toc.relative_to(folder)
            if any(part.startswith('.') for part in relative.parts):
                continue
            if toc.is_file():
                return True
        return False

    def find_toc_files(self, addon_path):
        """Names of the .toc files directly inside an addon folder."""
        addon_path = Path(addon_path)
        if not addon_path.is_dir():
            return []
        return sorted(p.name for p in addon_path.glob(f'*{TOC_SUFFIX}') if p.is_file())

    def detect_embedded_libs(self, addon_path):
        """Scan an addon folder for embedded libraries.

        A library is a subdirectory of one of the EMBEDDED_LIB_DIRS variants
        that holds its own .toc file.

        Args:
            addon_path: Path to the addon folder

        Returns:
            list - Library folder names, de-duplicated and sorted
        """
        addon_path = Path(addon_path)
        embedded = set()

        for lib_dir in EMBEDDED_LIB_DIRS:
            libs_path = addon_path / lib_dir
            if not libs_path.is_dir():
                continue
            for entry in libs_path.iterdir():
                if not entry.is_dir():
                    continue
                if (entry / f"{entry.name}{TOC_SUFFIX}").exists() or any(entry.glob(f'*{TOC_SUFFIX}')):
                    embedded.add(entry.name)

        # Case-insensitive filesystems list Libs and libs as the same folder
        return sorted(embedded)

    def has_git_repository(self, addon_path):
        return (Path(addon_path) / '.git').exists()
