"""Data model shared by the scanner, usage counter and orchestrator.

Entities are plain dataclasses so partial results can cross process
boundaries by pickling. Declaration fields are set once by the scanner;
usage fields are set once by the usage pass.
"""
import json
import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple


CLASS_KINDS = (
    "class", "abstract_class", "sealed_class", "base_class", "final_class",
    "interface_class", "state_class", "stateless_widget", "stateful_widget",
    "enum", "mixin", "mixin_class", "extension", "typedef",
)


def sanitize_file_path(file_path: str) -> str:
    """Flatten a path into a key-safe token (lib/a/b.dart -> a_b_dart)."""
    path = file_path.replace("\\", "/")
    if path.startswith("lib/"):
        path = path[4:]
    return re.sub(r"[/\\.]", "_", path)


def symbol_key(defined_in_file: str, name: str, owner: str = "") -> str:
    """Key for an active symbol: file-qualified so same-named symbols never collide."""
    qualified = f"{owner}.{name}" if owner else name
    return f"{defined_in_file}::{qualified}"


def commented_symbol_key(name: str, line: int, offset: int, defined_in_file: str) -> str:
    """Key for a commented-out symbol: name + line + offset + sanitized file."""
    return f"{name} _LineNo:{line}_PositionNo:{offset} {sanitize_file_path(defined_in_file)}"


@dataclass
class ClassEntity:
    """A class-like declaration (class, enum, mixin, extension, typedef)."""
    name: str
    defined_in_file: str
    kind: str = "class"
    is_entry_point: bool = False
    commented_out: bool = False
    declaration_line: int = 0  # 1-based
    declaration_offset: int = 0  # character offset into the file
    internal_usage_count: int = 0
    external_usages: Dict[str, int] = field(default_factory=dict)

    @property
    def key(self) -> str:
        if self.commented_out:
            return commented_symbol_key(self.name, self.declaration_line,
                                        self.declaration_offset, self.defined_in_file)
        return symbol_key(self.defined_in_file, self.name)

    @property
    def total_external_usages(self) -> int:
        return sum(self.external_usages.values())

    @property
    def total_usages(self) -> int:
        return self.internal_usage_count + self.total_external_usages

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClassEntity":
        return cls(**data)


@dataclass
class FunctionEntity:
    """A function, method or constructor definition."""
    name: str
    defined_in_file: str
    owner_class_name: str = ""  # empty for top-level functions
    is_entry_point: bool = False
    commented_out: bool = False
    is_prebuilt_framework_method: bool = False
    is_prebuilt_framework_method_commented_out: bool = False
    is_empty_body: bool = False
    is_constructor: bool = False
    is_static: bool = False
    declaration_line: int = 0
    declaration_offset: int = 0
    internal_usage_count: int = 0
    external_usages: Dict[str, int] = field(default_factory=dict)

    @property
    def key(self) -> str:
        if self.commented_out:
            return commented_symbol_key(self.name, self.declaration_line,
                                        self.declaration_offset, self.defined_in_file)
        return symbol_key(self.defined_in_file, self.name, self.owner_class_name)

    @property
    def total_external_usages(self) -> int:
        return sum(self.external_usages.values())

    @property
    def total_usages(self) -> int:
        return self.internal_usage_count + self.total_external_usages

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FunctionEntity":
        return cls(**data)


@dataclass(frozen=True)
class ImportExportFact:
    """One import or export directive.

    `path` is the resolved absolute path when the target could be resolved,
    otherwise the URI as written (e.g. `package:other/x.dart`, `dart:async`).
    """
    path: str
    source_file: str
    uri: str = ""
    as_alias: Optional[str] = None
    shown_names: Tuple[str, ...] = ()
    hidden_names: Tuple[str, ...] = ()
    is_export: bool = False

    @property
    def is_wildcard(self) -> bool:
        return not self.shown_names and not self.hidden_names

    def allows(self, symbol_name: str) -> bool:
        """Apply hide then show to a bare symbol name."""
        if symbol_name in self.hidden_names:
            return False
        if self.shown_names:
            return symbol_name in self.shown_names
        return True

    def to_dict(self) -> dict:
        data = asdict(self)
        data["shown_names"] = list(self.shown_names)
        data["hidden_names"] = list(self.hidden_names)
        data["is_wildcard"] = self.is_wildcard
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ImportExportFact":
        data = {k: v for k, v in data.items() if k != "is_wildcard"}
        data["shown_names"] = tuple(data.get("shown_names", ()))
        data["hidden_names"] = tuple(data.get("hidden_names", ()))
        return cls(**data)


@dataclass(frozen=True)
class LibraryFacts:
    """`library`, `part` and `part of` directives of one file."""
    source_file: str
    library_name: Optional[str] = None
    parts: Tuple[str, ...] = ()
    part_of_path: Optional[str] = None
    part_of_name: Optional[str] = None


@dataclass
class ScanResult:
    """Phase 1 output for one partition, or the merge of all partitions."""
    classes: Dict[str, ClassEntity] = field(default_factory=dict)
    functions: Dict[str, FunctionEntity] = field(default_factory=dict)
    exports: List[ImportExportFact] = field(default_factory=list)
    libraries: List[LibraryFacts] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failed: bool = False

    def merge(self, other: "ScanResult") -> None:
        """Fold another partial result into this one (last writer wins per key)."""
        self.classes.update(other.classes)
        self.functions.update(other.functions)
        seen = set(self.exports)
        for fact in other.exports:
            if fact not in seen:
                seen.add(fact)
                self.exports.append(fact)
        known = set(self.libraries)
        self.libraries.extend(lib for lib in other.libraries if lib not in known)
        self.warnings.extend(other.warnings)
        self.failed = self.failed or other.failed


@dataclass
class UsageResult:
    """Phase 2 output: usage counts per symbol key for a set of files."""
    class_internal: Dict[str, int] = field(default_factory=dict)
    class_external: Dict[str, Dict[str, int]] = field(default_factory=dict)
    function_internal: Dict[str, int] = field(default_factory=dict)
    function_external: Dict[str, Dict[str, int]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    failed: bool = False

    def merge(self, other: "UsageResult") -> None:
        self.class_internal.update(other.class_internal)
        self.function_internal.update(other.function_internal)
        for key, usages in other.class_external.items():
            self.class_external.setdefault(key, {}).update(usages)
        for key, usages in other.function_external.items():
            self.function_external.setdefault(key, {}).update(usages)
        self.warnings.extend(other.warnings)
        self.failed = self.failed or other.failed


@dataclass
class AnalysisResult:
    """The output contract: populated symbol maps plus the export list."""
    classes: Dict[str, ClassEntity] = field(default_factory=dict)
    functions: Dict[str, FunctionEntity] = field(default_factory=dict)
    exports: List[ImportExportFact] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "files": list(self.files),
            "classes": {key: entity.to_dict() for key, entity in self.classes.items()},
            "functions": {key: entity.to_dict() for key, entity in self.functions.items()},
            "exports": [fact.to_dict() for fact in self.exports],
            "warnings": list(self.warnings),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)
