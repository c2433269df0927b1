"""Context-tracking entity scanner.

Walks a Dart file line by line, keeping a stack of enclosing declarations
so that methods know their owner class and whether that class is a widget
`State`. Records every class-like declaration and (optionally) every
function definition into a ScanResult.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set

from loguru import logger

from .comments import SourceMask
from .directives import DirectiveParser
from .function_classifier import FunctionClassifier
from .models import ClassEntity, ScanResult
from .patterns import BLOCK_KINDS, has_entry_point_pragma, match_declaration

CLASS_PRAGMA_LOOKBACK = 5


@dataclass
class Frame:
    """One enclosing declaration on the context stack."""
    name: str
    kind: str
    commented: bool = False
    is_state: bool = False
    parent_depth: int = 0


class ScanContext:
    """Nesting state for one file.

    Depth is reset to 1 on every push and the frame is popped as soon as the
    depth falls back to 0 or below. A declaration whose `{` is on a later
    line waits for that brace before counting.
    """

    def __init__(self):
        self.stack: List[Frame] = []
        self.depth = 0
        self.inside_state_class = False
        self._awaiting_open = False

    @property
    def current_class_name(self) -> str:
        return self.stack[-1].name if self.stack else ""

    @property
    def any_commented(self) -> bool:
        return any(frame.commented for frame in self.stack)

    def enter(self, frame: Frame, open_braces: int, close_braces: int) -> None:
        frame.parent_depth = self.depth
        self.stack.append(frame)
        self.depth = 1
        self.inside_state_class = frame.is_state
        if open_braces:
            # The declaration's own brace is the 1 we just set.
            self._awaiting_open = False
            self._apply(open_braces - 1, close_braces)
        else:
            self._awaiting_open = True

    def update(self, open_braces: int, close_braces: int) -> None:
        if not self.stack:
            return
        if self._awaiting_open:
            if not open_braces:
                return
            open_braces -= 1
            self._awaiting_open = False
        self._apply(open_braces, close_braces)

    def _apply(self, opened: int, closed: int) -> None:
        self.depth += opened - closed
        while self.stack and self.depth <= 0:
            overflow = self.depth
            frame = self.stack.pop()
            self.depth = frame.parent_depth + overflow if self.stack else 0
            self.inside_state_class = self.stack[-1].is_state if self.stack else False


class EntityScanner:
    """Extract class-like and function declarations from Dart sources."""

    def __init__(
        self,
        analyze_functions: bool = True,
        follow_exports: bool = True,
        parser: Optional[DirectiveParser] = None,
        known_files: Optional[Set[str]] = None,
    ):
        """Initialize scanner.

        Args:
            analyze_functions: Also collect function/method definitions
            follow_exports: Recurse into exported files outside known_files
            parser: Directive parser (defaults to one without package roots)
            known_files: Files scanned elsewhere in this run (never followed)
        """
        self.analyze_functions = analyze_functions
        self.follow_exports = follow_exports
        self.parser = parser or DirectiveParser()
        self.known_files = known_files or set()

    def scan_file(self, file_path: str, result: ScanResult, visited: Optional[Set[str]] = None) -> None:
        """Scan one file (and, if enabled, the files it exports) into result.

        An unreadable file is recorded as a warning and skipped.

        Args:
            file_path: Absolute path of the file
            result: Partition-local result receiving entities and facts
            visited: Files already scanned by this call chain
        """
        if visited is None:
            visited = set()
        file_path = os.path.normpath(file_path)
        if file_path in visited:
            return
        visited.add(file_path)

        try:
            content = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            message = f"Skipping unreadable file {file_path}: {e}"
            logger.warning(message)
            result.warnings.append(message)
            return

        self.scan_source(content, file_path, result)

        exports = self.parser.parse_exports(content, file_path)
        result.exports.extend(exports)
        result.libraries.append(self.parser.parse_library(content, file_path))

        if not self.follow_exports:
            return
        for fact in exports:
            target = fact.path
            if not os.path.isabs(target) or target in self.known_files:
                continue
            logger.debug(f"Following export {fact.uri} from {file_path}")
            self.scan_file(target, result, visited)

    def scan_source(self, content: str, file_path: str, result: ScanResult) -> None:
        """Scan already-loaded content into result (no directive handling).

        Args:
            content: File content
            file_path: Path recorded as definedInFile
            result: Result receiving the entities
        """
        source = SourceMask(content)
        classifier = FunctionClassifier(source) if self.analyze_functions else None
        context = ScanContext()
        declared: Dict[str, str] = {}  # names declared so far in this file -> kind

        for index, line in enumerate(source.lines):
            trimmed = line.strip()
            open_braces = trimmed.count("{")
            close_braces = trimmed.count("}")

            declaration = match_declaration(line)
            if declaration is not None and source.is_in_string(source.offset_of(index, len(line) - len(line.lstrip()))):
                # Text inside a multi-line string literal.
                declaration = None
            if declaration is not None:
                entity = self._record_class(declaration, index, line, source, context, file_path)
                result.classes[entity.key] = entity
                declared[entity.name] = entity.kind

                name, _, pattern = declaration
                if pattern.kind in BLOCK_KINDS and self._opens_block(trimmed, entity.commented_out):
                    frame = Frame(
                        name=name,
                        kind=entity.kind,
                        commented=entity.commented_out,
                        is_state=self._is_state_class(name, declared),
                    )
                    context.enter(frame, open_braces, close_braces)
                else:
                    context.update(open_braces, close_braces)
            else:
                context.update(open_braces, close_braces)

            if classifier is not None:
                for function in classifier.collect(
                    index,
                    file_path,
                    owner=context.current_class_name,
                    inside_state_class=context.inside_state_class,
                    ancestor_commented=context.any_commented,
                ):
                    result.functions[function.key] = function

    @staticmethod
    def _opens_block(trimmed: str, commented: bool) -> bool:
        """Whether a declaration line starts a body that the context must track."""
        if "{" in trimmed:
            return True
        # `class A = B with C;` and prose like `// class design` open nothing.
        return not commented and not trimmed.endswith(";")

    @staticmethod
    def _is_state_class(name: str, declared: Dict[str, str]) -> bool:
        """Widget State companion: `FooState` next to `Foo`, or any private `_...State`."""
        if not name.endswith("State"):
            return False
        return name[:-len("State")] in declared or name.startswith("_")

    @staticmethod
    def _record_class(declaration, index: int, line: str, source: SourceMask,
                      context: ScanContext, file_path: str) -> ClassEntity:
        name, kind, _ = declaration
        trimmed = line.strip()
        lead = len(line) - len(line.lstrip())
        offset = source.offset_of(index, lead)

        commented = (
            trimmed.startswith(("//", "/*", "*"))
            or source.is_in_block_comment(offset)
            or context.any_commented
        )
        return ClassEntity(
            name=name,
            defined_in_file=file_path,
            kind=kind,
            is_entry_point=has_entry_point_pragma(source.lines, index, CLASS_PRAGMA_LOOKBACK),
            commented_out=commented,
            declaration_line=index + 1,
            declaration_offset=offset,
        )
