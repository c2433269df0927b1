"""Import/export/part directive parsing for Dart sources."""
import os
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .models import ImportExportFact, LibraryFacts
from .patterns import EXPORT_REGEX, IMPORT_REGEX, LIBRARY_REGEX, PART_OF_REGEX, PART_REGEX


def split_names(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a `show`/`hide` list into trimmed, non-empty names."""
    if not raw:
        return ()
    return tuple(name.strip() for name in raw.split(",") if name.strip())


class DirectiveParser:
    """Extract import, export and library-structure facts from one file.

    Relative URIs and `package:` URIs of packages found in the project are
    resolved to absolute paths; everything else is kept as written.
    """

    def __init__(self, package_roots: Optional[Dict[str, str]] = None):
        """Initialize parser.

        Args:
            package_roots: Package directory -> package name (from pubspec.yaml)
        """
        self.package_dirs: Dict[str, str] = {}
        for directory, name in (package_roots or {}).items():
            self.package_dirs.setdefault(name, directory)

    def resolve_uri(self, uri: str, source_file: str) -> Optional[str]:
        """Resolve a directive URI to an absolute file path.

        Args:
            uri: URI as written in the directive
            source_file: File containing the directive

        Returns:
            Absolute normalized path, or None for platform and third-party URIs
        """
        if uri.startswith("dart:"):
            return None

        if uri.startswith("package:"):
            package, _, rest = uri[len("package:"):].partition("/")
            directory = self.package_dirs.get(package)
            if directory is None or not rest:
                return None
            return os.path.normpath(os.path.join(directory, "lib", rest))

        if "://" in uri:
            return None

        target = uri if uri.endswith(".dart") else f"{uri}.dart"
        base = os.path.dirname(os.path.abspath(source_file))
        return os.path.normpath(os.path.join(base, target))

    def parse_imports(self, content: str, source_file: str) -> List[ImportExportFact]:
        """Parse `import` directives.

        Args:
            content: File content
            source_file: Absolute path of the file

        Returns:
            List of ImportExportFact with is_export=False
        """
        facts = []
        for match in IMPORT_REGEX.finditer(content):
            uri, alias, shown, hidden = match.groups()
            resolved = self.resolve_uri(uri, source_file)
            facts.append(ImportExportFact(
                path=resolved or uri,
                source_file=source_file,
                uri=uri,
                as_alias=alias,
                shown_names=split_names(shown),
                hidden_names=split_names(hidden),
                is_export=False,
            ))
        return facts

    def parse_exports(self, content: str, source_file: str) -> List[ImportExportFact]:
        """Parse `export` directives.

        A relative (or own-package) export whose target file does not exist
        is logged and dropped.

        Args:
            content: File content
            source_file: Absolute path of the file

        Returns:
            List of ImportExportFact with is_export=True
        """
        facts = []
        for match in EXPORT_REGEX.finditer(content):
            uri, shown, hidden = match.groups()
            resolved = self.resolve_uri(uri, source_file)
            if resolved is not None and not os.path.isfile(resolved):
                logger.warning(f"Exported file not found: {uri} (from {source_file})")
                continue
            facts.append(ImportExportFact(
                path=resolved or uri,
                source_file=source_file,
                uri=uri,
                shown_names=split_names(shown),
                hidden_names=split_names(hidden),
                is_export=True,
            ))
        return facts

    def parse_library(self, content: str, source_file: str) -> LibraryFacts:
        """Parse `library`, `part` and `part of` directives."""
        library = LIBRARY_REGEX.search(content)
        parts = []
        for match in PART_REGEX.finditer(content):
            resolved = self.resolve_uri(match.group(1), source_file)
            if resolved:
                parts.append(resolved)

        part_of_path = part_of_name = None
        part_of = PART_OF_REGEX.search(content)
        if part_of:
            if part_of.group(1):
                part_of_path = self.resolve_uri(part_of.group(1), source_file)
            else:
                part_of_name = part_of.group(2)

        return LibraryFacts(
            source_file=source_file,
            library_name=library.group(1) if library else None,
            parts=tuple(parts),
            part_of_path=part_of_path,
            part_of_name=part_of_name,
        )


def build_library_groups(libraries: List[LibraryFacts]) -> Dict[str, str]:
    """Map each part file to the file of the library that owns it.

    Args:
        libraries: Library facts of every scanned file

    Returns:
        Dict of part file -> library file (library files themselves are not keys)
    """
    by_name = {lib.library_name: lib.source_file for lib in libraries if lib.library_name}

    groups: Dict[str, str] = {}
    for lib in libraries:
        for part in lib.parts:
            groups[part] = lib.source_file
    for lib in libraries:
        owner = lib.part_of_path or by_name.get(lib.part_of_name or "")
        if owner and lib.source_file not in groups:
            groups[lib.source_file] = owner
    return groups
