"""Function/method definition detection.

Classification is a funnel: cheap line-level rejections first, then a
regex candidate search, then per-candidate rejections. Both rejection
stages are ordered tables of (label, predicate) so each rule can be tested
on its own and the precedence is explicit.
"""
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Tuple

from .comments import SourceMask
from .models import FunctionEntity
from .patterns import (
    FUNCTION_REGEX,
    PREBUILT_FRAMEWORK_METHODS,
    RESERVED_WORDS,
    STATEMENT_WORDS,
    has_entry_point_pragma,
)

MAX_SIGNATURE_LINES = 30


def _head(trimmed: str) -> str:
    """Text before the first body opener (`{` or `=>`)."""
    cut = len(trimmed)
    for token in ("{", "=>"):
        index = trimmed.find(token)
        if index != -1:
            cut = min(cut, index)
    return trimmed[:cut]


# -- line-level rejections ---------------------------------------------------

_CALL_PREFIXES = tuple(re.compile(p) for p in (
    r"^\s*await\s+\w+(?:\.\w+)?\s*\(",
    r"^\s*return\s+\w+(?:\.\w+)?\s*\(",
    r"^\s*if\s*\(\s*\w+(?:\.\w+)?\s*\(",
    r"^\s*while\s*\(\s*\w+(?:\.\w+)?\s*\(",
    r"^\s*for\s*\(",
    r"^\s*switch\s*\(",
    r"^\s*print\s*\(",
    r"^\s*throw\s+",
))


def is_blank_or_brace(trimmed: str) -> bool:
    return not trimmed or trimmed in ("{", "}")


def is_function_call(trimmed: str) -> bool:
    """Statement-level calls: `a.b(`, `x = f(`, `await f(`, `print(` ..."""
    if re.search(r"\w+\.\w+\s*\(", _head(trimmed)):
        return True
    if re.search(r"^\s*\w+\s*=\s*\w+(?:\.\w+)?\s*\(", trimmed):
        return True
    return any(pattern.search(trimmed) for pattern in _CALL_PREFIXES)


def is_return_statement(trimmed: str) -> bool:
    return trimmed.startswith("return ") or trimmed == "return;"


def is_constructor_call(trimmed: str) -> bool:
    if trimmed.startswith("new "):
        return True
    if re.search(r"^\s*(?:final|var|const|\w+)\s+\w+\s*=\s*[A-Z]\w*\s*\(", trimmed):
        return True
    return bool(re.search(r"^\s*return\s+[A-Z]\w*\s*\(", trimmed))


def is_variable_declaration(trimmed: str) -> bool:
    if re.search(r"^\s*(?:final|var|const|late)\s+\w+", trimmed):
        return True
    if re.search(r"^\s*(?:int|double|String|bool|List|Map|Set)\s+\w+\s*[=;]", trimmed):
        return True
    return bool(re.search(r"^\s*(?:static\s+)?(?:final\s+|const\s+)?[A-Z]\w*\s+_?\w+\s*[=;]", trimmed))


def is_type_declaration(trimmed: str) -> bool:
    """class/enum/mixin/extension headers (with or without generics/inheritance)."""
    return bool(
        re.search(r"^(?:abstract\s+)?(?:class|enum|mixin|extension)\s+\w+", trimmed)
        or re.search(r"^(?:abstract\s+)?class\s+\w+(?:<[^>]*>)?", trimmed)
    )


def is_widget_instantiation(trimmed: str) -> bool:
    """`Foo(...)`, `= Foo(`, `return Foo(`, `[Foo(` and friends.

    The bare `Foo(...)` shape must end the line; `fooBar(` never counts as a
    `Bar(` call.
    """
    head = _head(trimmed)
    return bool(
        re.search(r"(?<!\w)[A-Z]\w*\s*\([^)]*(?:\([^)]*\)[^)]*)*\)\s*[,;]?$", trimmed)
        or re.search(r"=\s*[A-Z]\w*\s*\(", head)
        or re.search(r"return\s+[A-Z]\w*\s*\(", head)
        or re.search(r"[\[\{,]\s*[A-Z]\w*\s*\(", head)
    )


LINE_REJECTIONS: Tuple[Tuple[str, Callable[[str], bool]], ...] = (
    ("blank_or_brace", is_blank_or_brace),
    ("function_call", is_function_call),
    ("return_statement", is_return_statement),
    ("constructor_call", is_constructor_call),
    ("variable_declaration", is_variable_declaration),
    ("type_declaration", is_type_declaration),
    ("widget_instantiation", is_widget_instantiation),
)


def line_rejection(trimmed: str) -> Optional[str]:
    """Label of the first line-level rule that rejects the line, if any."""
    for label, predicate in LINE_REJECTIONS:
        if predicate(trimmed):
            return label
    return None


# -- candidate-level rejections ----------------------------------------------

@dataclass
class Candidate:
    """A regex hit being judged, with the text and lines it came from."""
    text: str
    match: "re.Match"
    lines: Sequence[str]
    index: int
    current_class: str = ""

    @property
    def name(self) -> str:
        return self.match.group("name")

    @property
    def before(self) -> str:
        return self.text[:self.match.start()]


def _enclosing_open_paren(before: str) -> int:
    """Index of the innermost unmatched `(` in before, or -1."""
    depth = 0
    for i in range(len(before) - 1, -1, -1):
        if before[i] == ")":
            depth += 1
        elif before[i] == "(":
            depth -= 1
            if depth < 0:
                return i
    return -1


def is_inside_constructor_call(candidate: Candidate) -> bool:
    before = candidate.before
    index = _enclosing_open_paren(before)
    return index != -1 and bool(re.search(r"[A-Z]\w*\s*$", before[:index].strip()))


def is_lambda_parameter(candidate: Candidate) -> bool:
    before = candidate.before
    if re.search(r"\w+\s*:\s*$", before):
        return True
    if re.match(r"^\s*\)\s*=>", candidate.text[candidate.match.end():]):
        index = _enclosing_open_paren(before)
        return index != -1 and before[:index].strip().endswith(":")
    return False


def is_class_name(candidate: Candidate) -> bool:
    """The name is a type in context (declaration, inheritance or type use)."""
    name = candidate.name
    if name == candidate.current_class:
        return True
    escaped = re.escape(name)
    trimmed = candidate.text.strip()
    if re.search(r"^(?:abstract\s+)?(?:class|enum|mixin|extension)\s+" + escaped + r"\b", trimmed):
        return True
    if not name[0].isupper():
        return False

    first_line = trimmed.split("\n", 1)[0]
    if re.search(r"\b(?:extends|implements|with|mixin)\b", first_line):
        return True

    lines = candidate.lines
    start = max(candidate.index - 3, 0)
    context = "\n".join(lines[start:candidate.index + 4])
    for keyword in ("class", "enum", "mixin", "extension", "extends", "implements", "with"):
        if re.search(r"\b" + keyword + r"\s+" + escaped + r"\b", context):
            return True
    return bool(re.search(r"\b" + escaped + r"\s+\w+\s*[=;]", context))


def is_invalid_definition(candidate: Candidate) -> bool:
    """Shape check: `(params) {`, `(params) =>` or `(params);` in declaration position."""
    text = candidate.text
    before = candidate.before.strip()
    if before.endswith("."):
        return True
    if re.search(r"\w+\s*:\s*$", before):
        return True
    if re.search(r"=\s*$", before) and "=>" not in text:
        return True
    if before.endswith("(") or before.endswith(","):
        return True
    if is_type_declaration(text.strip()):
        return True

    start = text.strip()
    skip_prefixes = (
        "return ", "throw ", "print(", "debugPrint(", "log(", "if(", "while(",
        "for(", "switch(", "assert(", "class ", "abstract class ", "enum ",
        "mixin ", "extension ",
    )
    if start.startswith(skip_prefixes):
        return True
    if before.count("(") - before.count(")") > 0:
        return True
    return not re.search(r"\([^)]*\)\s*(?:async\s*\*?|sync\s*\*?)?\s*(?:\{|=>|;)", text[candidate.match.start():])


def is_reserved_word(candidate: Candidate) -> bool:
    """Control-flow constructs (`if (x) {`, `catch (e) {`, `return f();`).

    Only statement words disqualify the return-type slot; `void` and
    `dynamic` are ordinary return types there.
    """
    return_type = candidate.match.group("rtype").strip()
    return candidate.name in RESERVED_WORDS or return_type in STATEMENT_WORDS


def is_closure_argument(candidate: Candidate) -> bool:
    """`setState(() {` style calls whose argument is itself a closure."""
    return "(" in candidate.match.group("params")


def is_call_statement(candidate: Candidate) -> bool:
    """`foo(a);` with neither modifiers nor a return type is a call, not an abstract method."""
    match = candidate.match
    return match.group("opener") == ";" and not match.group("rtype") and not match.group("mods").strip()


CANDIDATE_REJECTIONS: Tuple[Tuple[str, Callable[[Candidate], bool]], ...] = (
    ("inside_constructor_call", is_inside_constructor_call),
    ("lambda_parameter", is_lambda_parameter),
    ("class_name", is_class_name),
    ("invalid_definition", is_invalid_definition),
    ("reserved_word", is_reserved_word),
    ("closure_argument", is_closure_argument),
    ("call_statement", is_call_statement),
)


def candidate_rejection(candidate: Candidate) -> Optional[str]:
    for label, predicate in CANDIDATE_REJECTIONS:
        if predicate(candidate):
            return label
    return None


# -- annotations ---------------------------------------------------------------

def body_is_empty(text: str, match: "re.Match") -> bool:
    """True for `{}`, `{ }`, `=> ;` and bodiless `;` declarations."""
    opener = match.group("opener")
    if opener == ";":
        return True
    rest = text[match.start("opener") + len(opener):]
    if opener == "=>":
        return not rest.split(";", 1)[0].strip()

    depth = 1
    for i, ch in enumerate(rest):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return not rest[:i].strip()
    return not rest.strip()


def has_override_annotation(lines: Sequence[str], index: int, before: str = "") -> bool:
    if "@override" in before:
        return True
    for i in range(index - 1, max(index - 4, -1), -1):
        line = lines[i].strip()
        if line == "@override":
            return True
        if line and not line.startswith(("@", "//", "/*")):
            break
    return False


def is_constructor_shape(name: str, text: str) -> bool:
    if not name or not name[0].isupper():
        return False
    return bool(re.match(r"^\s*(?://\s*)?[A-Z]\w*(?:\.\w+)?\s*\(", text.strip()))


def is_static_definition(text: str) -> bool:
    return text.strip().startswith("static ") and bool(re.search(r"\w+\s*\([^)]*\)\s*[\{=>]", text))


# -- classifier ----------------------------------------------------------------

@dataclass
class Definition:
    """An accepted definition on one line."""
    name: str
    match: "re.Match"
    text: str
    column: int  # of the match start, relative to the stripped line


class FunctionClassifier:
    """Find function/method/constructor definitions line by line."""

    def __init__(self, source: SourceMask):
        self.source = source
        self.lines = source.lines

    def _stitch(self, index: int, trimmed: str) -> str:
        """Join following lines onto a declaration whose signature or body continues."""
        masked = self.source.masked_lines
        pieces = [trimmed]
        cursor = index + 1

        parens = masked[index].count("(") - masked[index].count(")")
        if parens > 0 and re.search(r"\w+\s*(?:<[^>]*>)?\s*\([^)]*$", trimmed):
            while parens > 0 and cursor < len(self.lines) and cursor - index <= MAX_SIGNATURE_LINES:
                pieces.append(self.lines[cursor].strip())
                parens += masked[cursor].count("(") - masked[cursor].count(")")
                cursor += 1

        joined = "\n".join(pieces)
        braces = sum(masked[i].count("{") - masked[i].count("}") for i in range(index, cursor))
        opens_body = "{" in joined or "=>" in joined
        if "(" in joined and ")" in joined and opens_body and braces > 0:
            while braces > 0 and cursor < len(self.lines):
                pieces.append(self.lines[cursor])
                braces += masked[cursor].count("{") - masked[cursor].count("}")
                cursor += 1
            joined = "\n".join(pieces)
        return joined

    def find_definitions(self, index: int, current_class: str = "") -> List[Definition]:
        """Return every definition whose signature starts on line index.

        Args:
            index: 0-based line index
            current_class: Name of the enclosing declaration, if any

        Returns:
            Accepted definitions in textual order
        """
        trimmed = self.lines[index].strip()
        if line_rejection(trimmed):
            return []

        text = self._stitch(index, trimmed)
        found = []
        for match in FUNCTION_REGEX.finditer(text):
            if match.start() >= len(trimmed):
                break
            candidate = Candidate(text, match, self.lines, index, current_class)
            if candidate_rejection(candidate):
                continue
            found.append(Definition(match.group("name"), match, text, match.start()))
        return found

    def definition_offsets(self) -> Set[int]:
        """Absolute offsets of every defined name in the file (for the usage pass)."""
        offsets = set()
        for index, line in enumerate(self.lines):
            lead = len(line) - len(line.lstrip())
            for definition in self.find_definitions(index):
                column = definition.match.start("name")
                offsets.add(self.source.offset_of(index, lead + column))
        return offsets

    def collect(
        self,
        index: int,
        file_path: str,
        owner: str = "",
        inside_state_class: bool = False,
        ancestor_commented: bool = False,
    ) -> List[FunctionEntity]:
        """Build FunctionEntity records for definitions on one line.

        CRITICAL: `@override` methods are treated as used and dropped unless
        commented out; prebuilt framework methods are only kept when
        commented out (they land in the disabled-lifecycle bucket).

        Args:
            index: 0-based line index
            file_path: Absolute path of the file
            owner: Enclosing class name ('' for top level)
            inside_state_class: Whether the enclosing class is a widget State
            ancestor_commented: Whether an enclosing declaration is commented out

        Returns:
            List of FunctionEntity (possibly empty)
        """
        line = self.lines[index]
        trimmed = line.strip()
        lead = len(line) - len(line.lstrip())
        entities = []

        for definition in self.find_definitions(index, owner):
            name = definition.name
            match = definition.match
            offset = self.source.offset_of(index, lead + definition.column)
            if self.source.is_in_string(offset):
                continue

            commented = (
                trimmed.startswith(("//", "/*"))
                or self.source.is_in_block_comment(offset)
                or ancestor_commented
            )
            is_override = has_override_annotation(self.lines, index, definition.text[:match.start()])
            if is_override and not commented:
                continue

            prebuilt_name = name in PREBUILT_FRAMEWORK_METHODS
            if not commented and prebuilt_name:
                continue

            entities.append(FunctionEntity(
                name=name,
                defined_in_file=file_path,
                owner_class_name=owner,
                is_entry_point=not commented and has_entry_point_pragma(self.lines, index, 3),
                commented_out=commented,
                is_prebuilt_framework_method=inside_state_class and name in PREBUILT_FRAMEWORK_METHODS,
                is_prebuilt_framework_method_commented_out=commented and prebuilt_name,
                is_empty_body=body_is_empty(definition.text, match),
                is_constructor=is_constructor_shape(name, definition.text[match.start():]),
                is_static=is_static_definition(definition.text),
                declaration_line=index + 1,
                declaration_offset=offset,
            ))
        return entities
