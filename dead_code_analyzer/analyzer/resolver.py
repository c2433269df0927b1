"""Visibility resolution: can a symbol defined in file A be referenced from file B?

Re-exports are modelled as a networkx MultiDiGraph (edge A -> B means "A
exports B"); each edge keeps its directive so show/hide lists filter the
paths a symbol may travel along.
"""
import os
import re
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

from .models import ImportExportFact
from .patterns import IMPLICIT_CORE_TYPES, is_core_library

_LIB_SEGMENT = re.compile(r".*[/\\]([^/\\]+)[/\\]lib[/\\](.*)")
_WINDOWS_PATH = re.compile(r"^[A-Za-z]:[/\\]|\\")


def normalize_path(path: str) -> str:
    """Slash-normalize a path for comparison.

    Only Windows paths are lowercased; POSIX filesystems are case-sensitive,
    so `a.dart` and `A.dart` stay distinct there.
    """
    case_insensitive = os.name == "nt" or bool(_WINDOWS_PATH.search(path))
    path = path.replace("\\", "/")
    while "//" in path:
        path = path.replace("//", "/")
    return path.lower() if case_insensitive else path


class PackageUriStrategy:
    """Maps an on-disk path to its `package:` URI form."""

    def to_package_uri(self, path: str) -> Optional[str]:
        raise NotImplementedError


class LibSegmentStrategy(PackageUriStrategy):
    """`.../<dir>/lib/<rest>` -> `package:<dir>/<rest>` (last `lib` segment wins)."""

    def to_package_uri(self, path: str) -> Optional[str]:
        if path.startswith(("package:", "dart:")):
            return path
        match = _LIB_SEGMENT.match(path)
        if not match:
            return None
        package, rest = match.groups()
        return f"package:{package}/{rest.replace(os.sep, '/')}"


class PubspecPackageStrategy(PackageUriStrategy):
    """Use declared package names from pubspec.yaml, for workspaces whose
    directory names differ from their package names.
    """

    def __init__(self, package_roots: Dict[str, str], fallback: Optional[PackageUriStrategy] = None):
        """Initialize strategy.

        Args:
            package_roots: Package directory -> package name
            fallback: Strategy for files outside every known package
        """
        # Deepest roots first so nested packages win over their parents.
        self.roots: List[Tuple[str, str]] = sorted(
            ((normalize_path(os.path.join(directory, "lib")) + "/", name)
             for directory, name in package_roots.items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )
        self.fallback = fallback or LibSegmentStrategy()

    def to_package_uri(self, path: str) -> Optional[str]:
        if path.startswith(("package:", "dart:")):
            return path
        normalized = normalize_path(path)
        for lib_dir, name in self.roots:
            if normalized.startswith(lib_dir):
                return f"package:{name}/{normalized[len(lib_dir):]}"
        return self.fallback.to_package_uri(path)


class VisibilityResolver:
    """Decide accessibility of symbols across files."""

    def __init__(
        self,
        exports: Iterable[ImportExportFact] = (),
        library_groups: Optional[Dict[str, str]] = None,
        strategy: Optional[PackageUriStrategy] = None,
    ):
        """Initialize resolver.

        Args:
            exports: Every export directive found in the run
            library_groups: Part file -> owning library file
            strategy: Package URI strategy (defaults to LibSegmentStrategy)
        """
        self.strategy = strategy or LibSegmentStrategy()
        self.graph = nx.MultiDiGraph()
        for fact in exports:
            self.graph.add_edge(self.canonical(fact.source_file), self.canonical(fact.path), fact=fact)

        self.library_of: Dict[str, str] = {
            self.canonical(part): self.canonical(owner)
            for part, owner in (library_groups or {}).items()
        }
        self._reach_cache: Dict[Tuple[str, str], Set[str]] = {}

    def canonical(self, path: str) -> str:
        """Comparable form of a path: package URI when one applies, else the normalized path."""
        uri = self.strategy.to_package_uri(path)
        return normalize_path(uri if uri else path)

    def paths_equivalent(self, a: str, b: str) -> bool:
        return self.canonical(a) == self.canonical(b)

    def same_library(self, a: str, b: str) -> bool:
        a, b = self.canonical(a), self.canonical(b)
        return a == b or self.library_of.get(a, a) == self.library_of.get(b, b)

    def _reachable(self, start: str, symbol_name: str) -> Set[str]:
        """Files re-exported (transitively) from start that let symbol_name through."""
        key = (start, symbol_name)
        if key not in self._reach_cache:
            if start in self.graph:
                graph = self.graph
                view = nx.subgraph_view(
                    graph,
                    filter_edge=lambda u, v, k: graph.edges[u, v, k]["fact"].allows(symbol_name),
                )
                self._reach_cache[key] = nx.descendants(view, start)
            else:
                self._reach_cache[key] = set()
        return self._reach_cache[key]

    def _import_reaches(self, fact: ImportExportFact, symbol_name: str, defined: str) -> str:
        """How an import exposes the defining file: 'direct', 'export' or ''."""
        if fact.is_export or not fact.allows(symbol_name):
            return ""
        target = self.canonical(fact.path)
        if target == defined:
            return "direct"
        if defined in self._reachable(target, symbol_name):
            return "export"
        return ""

    def is_accessible(
        self,
        symbol_name: str,
        defined_in_file: str,
        from_file: str,
        imports: Sequence[ImportExportFact],
    ) -> bool:
        """Apply the visibility rules in order; the first rule that matches decides.

        Args:
            symbol_name: Bare symbol name
            defined_in_file: File declaring the symbol
            from_file: File containing the candidate reference
            imports: Import directives in effect for from_file

        Returns:
            True if from_file may reference the symbol
        """
        defined = self.canonical(defined_in_file)
        origin = self.canonical(from_file)
        same_library = self.same_library(defined_in_file, from_file)

        if symbol_name.startswith("_") and not same_library:
            return False
        if defined == origin:
            return True
        if same_library:
            return True
        if any(self._import_reaches(fact, symbol_name, defined) == "direct" for fact in imports):
            return True
        if any(self._import_reaches(fact, symbol_name, defined) == "export" for fact in imports):
            return True
        if is_core_library(defined_in_file):
            return True
        return symbol_name in IMPLICIT_CORE_TYPES

    def effective_name(
        self,
        symbol_name: str,
        defined_in_file: str,
        imports: Sequence[ImportExportFact],
    ) -> str:
        """Name to search for in an importing file (`prefix.Name` for aliased imports).

        A plain import of the defining library wins over an aliased one.
        """
        defined = self.canonical(defined_in_file)
        alias = None
        for fact in imports:
            if not self._import_reaches(fact, symbol_name, defined):
                continue
            if not fact.as_alias:
                return symbol_name
            alias = alias or fact.as_alias
        return f"{alias}.{symbol_name}" if alias else symbol_name
