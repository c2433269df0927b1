"""Usage counting for classes and functions.

Each file is lexed once (SourceMask), so comments and string literals are
blank before any usage shape is tried. Counts are written into a
UsageResult keyed by symbol key and only folded into the entities by
apply_usages(), once per run.
"""
import re
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Set, Tuple

from loguru import logger

from .comments import SourceMask
from .directives import DirectiveParser
from .errors import PreconditionError
from .function_classifier import FunctionClassifier
from .models import ClassEntity, FunctionEntity, ImportExportFact, UsageResult
from .patterns import KEYWORDS
from .resolver import VisibilityResolver

_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")
_DIRECTIVE_LINE = re.compile(r"^\s*(?:import|export|part|library)\b")
_TYPE_DECLARATION_LINE = re.compile(
    r"^\s*(?:(?:abstract|sealed|base|final|interface)\s+)*(?:mixin\s+)?(?:class|enum|mixin|extension|typedef)\b"
)
_TYPE_PREFIX = re.compile(r"^\s*(?:@\w+\s+)*(?:(?:static|external|abstract|final|const|late|var|covariant)\s+)*"
                          r"(?:[A-Za-z_][\w<>,?\s\[\]]*?[\w>?\]]\s+)?$")


# -- class usage shapes --------------------------------------------------------

@lru_cache(maxsize=4096)
def _declaration_with_initializer(name: str) -> Pattern:
    n = re.escape(name)
    return re.compile(rf"\b{n}\??\s+\w+\s*=\s*(?:new\s+|const\s+)?{n}\s*(?:<[^<>]*>)?\s*\(")


@lru_cache(maxsize=4096)
def class_usage_shapes(name: str) -> Tuple[Tuple[str, Pattern], ...]:
    """Ordered usage shapes for a (possibly `prefix.`-qualified) class name."""
    n = re.escape(name)
    return tuple((label, re.compile(regex)) for label, regex in (
        ("constructor_call", rf"(?:\bnew\s+|\bconst\s+)?(?P<name>\b{n})(?:<[^<>]*>)?\s*\("),
        ("type_declaration", rf"(?P<name>\b{n})\??(?:\s+\w+\s*[;,)=]|\s*>)"),
        ("static_access", rf"(?P<name>\b{n})\.\w+"),
        ("cast", rf"\b(?:as|is!?)\s+(?P<name>{n})\b"),
        ("generic_argument", rf"<[^<>]*?(?<![\w.])(?P<name>{n})\b[^<>]*>"),
        ("parameter_type", rf"\([^()]*?(?<![\w.])(?P<name>{n})\??\s+\w+[^()]*\)"),
        ("return_type", rf"(?P<name>\b{n})(?:<[^<>]*>)?\??\s+\w+\s*\("),
        ("inheritance", rf"\b(?:extends|with|implements|on)\s+(?:\w+(?:<[^<>]*>)?\s*,\s*)*(?P<name>{n})\b"),
    ))


@lru_cache(maxsize=4096)
def _constructor_declaration(name: str) -> Pattern:
    n = re.escape(name)
    return re.compile(rf"^\s*(?:const\s+|factory\s+|external\s+)*{n}(?:\.\w+)?\s*\((?!.*\)\s*[,.)\]])")


def count_class_usages_in_line(line: str, name: str) -> int:
    """Count class references on one masked line.

    A `Foo x = Foo(...)` declaration counts once and is blanked before the
    remaining shapes run; the other shapes are deduplicated by position.
    """
    count = 0
    initializer = _declaration_with_initializer(name)
    if initializer.search(line):
        count += len(initializer.findall(line))
        line = initializer.sub(lambda m: " " * len(m.group(0)), line)

    positions = set()
    for _, shape in class_usage_shapes(name):
        for match in shape.finditer(line):
            positions.add(match.start("name"))
    return count + len(positions)


def count_class_usages(source: SourceMask, name: str, declaration_line: int = 0) -> int:
    """Count references to a class in one file.

    Args:
        source: Lexed file
        name: Class name as it must appear in this file (may be `prefix.Name`)
        declaration_line: 1-based line to skip (the declaration itself), 0 for none

    Returns:
        Number of usages
    """
    total = 0
    skip_constructors = _constructor_declaration(name) if declaration_line else None
    for index, line in enumerate(source.masked_lines):
        if index + 1 == declaration_line or name not in line or _DIRECTIVE_LINE.match(line):
            continue
        if skip_constructors is not None and skip_constructors.search(line):
            continue
        total += count_class_usages_in_line(line, name)
    return total


# -- function usage shapes -----------------------------------------------------

@lru_cache(maxsize=4096)
def function_usage_shapes(name: str) -> Tuple[Tuple[str, Pattern], ...]:
    """Call-site shapes for a function name."""
    n = re.escape(name)
    follow = r"(?=\s*(?:[,)\]};]|$))"
    return tuple((label, re.compile(regex)) for label, regex in (
        ("direct_call", rf"(?<![\w.$])(?P<name>{n})\s*(?:<[^<>]*>)?\s*\("),
        ("method_call", rf"\.\s*(?P<name>{n})\s*(?:<[^<>]*>)?\s*\("),
        ("cascade", rf"\.\.\s*(?P<name>{n})\b"),
        ("null_aware", rf"\?\.\s*(?P<name>{n})\b"),
        ("static_tear_off", rf"\b[A-Z]\w*\.(?P<name>{n})\b"),
        ("callback_assignment", rf"(?<![=!<>])=\s*(?P<name>{n}){follow}"),
        ("named_argument", rf"\b\w+\s*:\s*(?P<name>{n}){follow}"),
        ("positional_argument", rf"[(,]\s*(?P<name>{n}){follow}"),
        ("higher_order", rf"\.(?:map|where|forEach|any|every|fold|reduce|expand|firstWhere|lastWhere"
                         rf"|singleWhere|sort|removeWhere|retainWhere|asyncMap|asyncExpand|transform)"
                         rf"\s*\(\s*(?P<name>{n})\b"),
        ("future_callback", rf"\.(?:then|catchError|whenComplete|timeout)\s*\(\s*(?P<name>{n})\b"),
        ("stream_callback", rf"\.(?:listen|onError|handleError|onDone)\s*\(\s*(?P<name>{n})\b"),
        ("listener", rf"\b(?:add|remove)(?:Status)?Listener\s*\(\s*(?P<name>{n})\b"),
        ("timer", rf"\b(?:Timer(?:\.periodic)?|Future(?:\.delayed|\.microtask)?|scheduleMicrotask"
                  rf"|Isolate\.spawn|compute)\s*\([^;]*?(?<![\w.])(?P<name>{n}){follow}"),
        ("navigator_builder", rf"\b(?:builder|pageBuilder|transitionsBuilder|onGenerateRoute)\s*:\s*(?P<name>{n})\b"),
        ("collection_element", rf"[\[{{]\s*(?P<name>{n}){follow}"),
        ("ternary", rf"\?\s*(?P<name>{n})\s*:"),
        ("null_coalescing", rf"\?\?\s*(?P<name>{n})\b"),
        ("arrow_reference", rf"=>\s*(?P<name>{n}){follow}"),
        ("await", rf"\bawait\s+(?P<name>{n})\b"),
        ("return_reference", rf"\breturn\s+(?P<name>{n})\s*;"),
        ("throw", rf"\bthrow\s+(?P<name>{n})\b"),
        ("member_tear_off", rf"\.(?P<name>{n})(?![\w$]|\s*[(.])"),
    ))


def _looks_like_signature(line: str, start: int, end: int) -> bool:
    """`Type name(params) {` / `=>` / `;` shape around the match."""
    prefix = line[:start]
    rest = line[end:]
    if not re.match(r"\s*(?:<[^<>]*>)?\s*\(", rest):
        return False

    depth = 0
    close = -1
    for i, ch in enumerate(rest):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                close = i
                break
    if close == -1:
        return False
    after = rest[close + 1:]
    body = re.match(r"\s*(?:async\s*\*?|sync\s*\*?)?\s*(\{|=>|;)", after)
    if not body:
        return False

    words = prefix.split()
    if words and words[-1] in KEYWORDS and words[-1] not in ("static", "external", "void", "dynamic", "abstract", "final", "const"):
        return False
    if not _TYPE_PREFIX.match(prefix):
        return False
    if body.group(1) == ";":
        # `f(a);` is a call; an abstract declaration needs a return type
        return bool(prefix.strip())
    return True


def _declares_variable(prefix: str, suffix: str) -> bool:
    """`Type name = ...` / `var name;` with the candidate as the declared name."""
    if not re.match(r"\s*(?:=(?![=>])|;)", suffix):
        return False
    stripped = prefix.strip()
    if not stripped:
        return False
    last = stripped.split()[-1]
    if last in ("return", "throw", "await", "yield", "else", "in", "is", "as", "case", "new"):
        return False
    return bool(_TYPE_PREFIX.match(prefix))


def _is_parameter_name(prefix: str, suffix: str) -> bool:
    """A name inside a parameter list, preceded by its type."""
    if prefix.count("(") <= prefix.count(")"):
        return False
    if not re.match(r"\s*(?:[,)}=\]]|$)", suffix):
        return False
    typed = re.search(r"([\w>?\]])\s+$", prefix)
    if not typed:
        return False
    last = prefix.split()[-1]
    return last not in ("return", "throw", "await", "yield", "else", "in", "is", "as", "case", "new")


class UsageCounter:
    """Count usages of every known symbol across a set of files."""

    def __init__(
        self,
        classes: Dict[str, ClassEntity],
        functions: Dict[str, FunctionEntity],
        resolver: VisibilityResolver,
        parser: Optional[DirectiveParser] = None,
        library_groups: Optional[Dict[str, str]] = None,
    ):
        """Initialize counter.

        Args:
            classes: Global class map (read only)
            functions: Global function map (read only)
            resolver: Visibility resolver built from the merged export facts
            parser: Directive parser used to read each file's imports
            library_groups: Part file -> library file, so parts share their library's imports

        Raises:
            PreconditionError: If both symbol tables are empty
        """
        if not classes and not functions:
            raise PreconditionError("Usage analysis needs at least one scanned symbol")
        self.resolver = resolver
        self.parser = parser or DirectiveParser()
        self.library_groups = library_groups or {}

        # Commented-out declarations cannot be referenced.
        self.classes = [(key, entity) for key, entity in classes.items() if not entity.commented_out]
        self.functions = [
            (key, entity) for key, entity in functions.items()
            if not entity.commented_out and not entity.is_prebuilt_framework_method_commented_out
        ]
        self._library_imports: Dict[str, List[ImportExportFact]] = {}

    def count_files(self, files: Iterable[str], progress: Optional[Callable[[int], None]] = None) -> UsageResult:
        """Count usages in every file; unreadable files become warnings."""
        result = UsageResult()
        for file_path in files:
            if progress is not None:
                progress(1)
            try:
                content = Path(file_path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                message = f"Skipping unreadable file {file_path}: {e}"
                logger.warning(message)
                result.warnings.append(message)
                continue
            self.count_source(content, file_path, result)
        return result

    def _imports_for(self, file_path: str, content: str) -> List[ImportExportFact]:
        imports = self.parser.parse_imports(content, file_path)
        owner = self.library_groups.get(file_path)
        if owner and owner != file_path:
            if owner not in self._library_imports:
                try:
                    owner_content = Path(owner).read_text(encoding="utf-8")
                    self._library_imports[owner] = self.parser.parse_imports(owner_content, owner)
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"Could not read library {owner} for part {file_path}: {e}")
                    self._library_imports[owner] = []
            imports = imports + self._library_imports[owner]
        return imports

    def count_source(self, content: str, file_path: str, result: UsageResult) -> None:
        """Count usages of every symbol in one file into result.

        Args:
            content: File content
            file_path: Absolute path of the file
            result: Result receiving internal/external counts
        """
        source = SourceMask(content)
        tokens = set(_IDENTIFIER.findall(source.masked))
        imports = self._imports_for(file_path, content)

        for key, entity in self.classes:
            if entity.name not in tokens:
                continue
            if self.resolver.paths_equivalent(entity.defined_in_file, file_path):
                result.class_internal[key] = count_class_usages(source, entity.name, entity.declaration_line)
                continue
            if not self.resolver.is_accessible(entity.name, entity.defined_in_file, file_path, imports):
                continue
            effective = self.resolver.effective_name(entity.name, entity.defined_in_file, imports)
            count = count_class_usages(source, effective)
            if count > 0:
                result.class_external.setdefault(key, {})[file_path] = count

        definitions: Optional[Set[int]] = None
        for key, entity in self.functions:
            if entity.name not in tokens:
                continue
            same_file = self.resolver.paths_equivalent(entity.defined_in_file, file_path)
            if not same_file and not self._function_visible(entity, file_path, imports):
                continue
            if definitions is None:
                definitions = FunctionClassifier(source).definition_offsets()
            qualifier = ""
            if not same_file and not entity.owner_class_name:
                effective = self.resolver.effective_name(entity.name, entity.defined_in_file, imports)
                qualifier = effective[:-len(entity.name) - 1] if effective != entity.name else ""
            count = len(self.function_usage_offsets(
                source,
                entity.name,
                definitions,
                declaration_line=entity.declaration_line if same_file else 0,
                qualifier=qualifier,
            ))
            if same_file:
                result.function_internal[key] = count
            elif count > 0:
                result.function_external.setdefault(key, {})[file_path] = count

    def _function_visible(self, entity: FunctionEntity, file_path: str,
                          imports: List[ImportExportFact]) -> bool:
        if entity.owner_class_name:
            # Methods are reached through instances, not imports; only privacy applies.
            return not entity.name.startswith("_") or self.resolver.same_library(entity.defined_in_file, file_path)
        return self.resolver.is_accessible(entity.name, entity.defined_in_file, file_path, imports)

    @staticmethod
    def function_usage_offsets(
        source: SourceMask,
        name: str,
        definitions: Set[int],
        declaration_line: int = 0,
        qualifier: str = "",
    ) -> Set[int]:
        """Absolute offsets of real call-site references to a function name.

        Args:
            source: Lexed file
            name: Function name
            definitions: Offsets of every definition name in the file
            declaration_line: 1-based line to skip (the declaration itself), 0 for none
            qualifier: Import prefix the reference must carry (`a` for `a.name`), empty for none

        Returns:
            Deduplicated set of offsets
        """
        offsets: Set[int] = set()
        shapes = function_usage_shapes(name)
        prefixed = re.compile(rf"(?<![\w.$]){re.escape(qualifier)}\s*\.\s*$") if qualifier else None
        for index, line in enumerate(source.masked_lines):
            if index + 1 == declaration_line or name not in line:
                continue
            if _DIRECTIVE_LINE.match(line) or _TYPE_DECLARATION_LINE.match(line):
                continue
            for _, shape in shapes:
                for match in shape.finditer(line):
                    start, end = match.start("name"), match.end("name")
                    offset = source.offset_of(index, start)
                    if offset in offsets or source.is_masked(offset):
                        continue
                    if offset in definitions or _looks_like_signature(line, start, end):
                        continue
                    prefix, suffix = line[:start], line[end:]
                    if prefixed is not None and not prefixed.search(prefix):
                        continue
                    if _declares_variable(prefix, suffix) or _is_parameter_name(prefix, suffix):
                        continue
                    offsets.add(offset)
        return offsets


def apply_usages(
    classes: Dict[str, ClassEntity],
    functions: Dict[str, FunctionEntity],
    usage: UsageResult,
) -> None:
    """Write merged usage counts into the entities (once per run)."""
    for key, entity in classes.items():
        entity.internal_usage_count = usage.class_internal.get(key, 0)
        entity.external_usages = dict(sorted(usage.class_external.get(key, {}).items()))
    for key, entity in functions.items():
        entity.internal_usage_count = usage.function_internal.get(key, 0)
        entity.external_usages = dict(sorted(usage.function_external.get(key, {}).items()))
