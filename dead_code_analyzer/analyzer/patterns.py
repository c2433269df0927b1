"""Dart grammar tables used by the scanner, classifier and usage counter.

The declaration, pragma and directive expressions are kept textually stable:
reports produced by earlier versions of the analyzer depend on exactly what
they accept.
"""
import re
from dataclasses import dataclass
from typing import FrozenSet, Optional, Pattern, Sequence, Tuple


@dataclass(frozen=True)
class DeclarationPattern:
    """A class-like declaration shape and the kind it yields."""
    label: str
    regex: Pattern
    kind: str


_COMMENT_PREFIX = r"^\s*(?:\/\/+\s*|\*\s*)?"
_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"

# Order is precedence: mixin class must be tried before mixin, otherwise
# `mixin class Foo` is read as a mixin named `class`.
DECLARATION_PATTERNS: Tuple[DeclarationPattern, ...] = (
    DeclarationPattern(
        "Mixin class",
        re.compile(_COMMENT_PREFIX + r"mixin\s+class\s+(" + _IDENT + r")"),
        "mixin_class",
    ),
    DeclarationPattern(
        "Regular class",
        re.compile(
            _COMMENT_PREFIX
            + r"(?:sealed\s+|abstract\s+|base\s+|final\s+|interface\s+)*class\s+("
            + _IDENT
            + r")"
        ),
        "class",
    ),
    DeclarationPattern(
        "Enum",
        re.compile(_COMMENT_PREFIX + r"enum\s+(" + _IDENT + r")"),
        "enum",
    ),
    DeclarationPattern(
        "Mixin",
        re.compile(_COMMENT_PREFIX + r"mixin\s+(" + _IDENT + r")"),
        "mixin",
    ),
    DeclarationPattern(
        "Named extension",
        re.compile(_COMMENT_PREFIX + r"extension\s+(" + _IDENT + r"(?:<[^>]*>)?)\s+on\s+"),
        "extension",
    ),
    DeclarationPattern(
        "Anonymous extension",
        re.compile(_COMMENT_PREFIX + r"extension\s+on\s+([A-Za-z_][A-Za-z0-9_<>,\s]*)"),
        "extension",
    ),
    DeclarationPattern(
        "Typedef",
        re.compile(_COMMENT_PREFIX + r"typedef\s+(" + _IDENT + r")"),
        "typedef",
    ),
)

# Kinds that open a `{ ... }` body and therefore a scan context.
BLOCK_KINDS = frozenset({"class", "mixin_class", "enum", "mixin", "extension"})

PRAGMA_REGEX = re.compile(
    r"""^\s*@pragma\s*\(\s*['"]((?:vm:entry-point)|(?:vm:external-name)|(?:vm:prefer-inline)|(?:vm:exact-result-type)|(?:vm:never-inline)|(?:vm:non-nullable-by-default)|(?:flutter:keep-to-string)|(?:flutter:keep-to-string-in-subtypes))['"]\s*(?:,\s*[^)]+)?\s*\)\s*$"""
)

IMPORT_REGEX = re.compile(
    r"""^[ \t]*import\s+['"](.+?)['"]\s*(?:deferred\s+)?(?:as\s+(\w+))?\s*(?:show\s+([\w\s,]+?))?\s*(?:hide\s+([\w\s,]+?))?\s*;""",
    re.MULTILINE,
)
EXPORT_REGEX = re.compile(
    r"""^[ \t]*export\s+['"](.+?)['"]\s*(?:show\s+([\w\s,]+?))?\s*(?:hide\s+([\w\s,]+?))?\s*;""",
    re.MULTILINE,
)
LIBRARY_REGEX = re.compile(r"""^[ \t]*library\s+([\w.]+)\s*;""", re.MULTILINE)
PART_REGEX = re.compile(r"""^[ \t]*part\s+['"](.+?)['"]\s*;""", re.MULTILINE)
PART_OF_REGEX = re.compile(r"""^[ \t]*part\s+of\s+(?:['"](.+?)['"]|([\w.]+))\s*;""", re.MULTILINE)

# Function/method definition: optional comment marker, modifiers, optional
# return type, then `name(params)` followed by a body opener.
FUNCTION_REGEX = re.compile(
    r"(?P<comment>//\s*)?"
    r"(?P<mods>(?:static\s+|abstract\s+|external\s+|final\s+|const\s+|override\s+|async\s+)*)"
    r"(?P<rtype>(?:void|int|double|String|bool|dynamic|Object|num|Widget|State|StatefulWidget"
    r"|StatelessWidget|List(?:<[^>]*>)?|Map(?:<[^>]*,[^>]*>)?|Set(?:<[^>]*>)?|Future(?:<[^>]+>)?"
    r"|Stream(?:<[^>]+>)?|[A-Z]\w*(?:<[^>]*>)?|[a-zA-Z_]\w*(?:<[^>]*>)?)\s+|)"
    r"(?P<name>\w+)(?:<[^>]*>)?\s*\((?P<params>[^)]*)\)\s*(?:async\s*\*?|sync\s*\*?)?\s*(?P<opener>\{|=>|;)"
)

KEYWORDS: FrozenSet[str] = frozenset({
    "abstract", "as", "assert", "async", "await", "break", "case", "catch",
    "class", "const", "continue", "default", "deferred", "do", "dynamic",
    "else", "enum", "export", "extends", "external", "factory", "false",
    "final", "finally", "for", "Function", "get", "hide", "if", "implements",
    "import", "in", "interface", "is", "late", "library", "mixin", "new",
    "null", "on", "operator", "part", "required", "rethrow", "return",
    "sealed", "set", "show", "static", "super", "switch", "sync", "this",
    "throw", "true", "try", "typedef", "var", "void", "while", "with", "yield",
})

# Reserved words proper: never a function name. Built-in identifiers such as
# `show`, `get` or `on` are legal method names and are not listed.
RESERVED_WORDS: FrozenSet[str] = frozenset({
    "assert", "break", "case", "catch", "class", "const", "continue",
    "default", "do", "else", "enum", "extends", "false", "final", "finally",
    "for", "if", "in", "is", "new", "null", "rethrow", "return", "super",
    "switch", "this", "throw", "true", "try", "var", "void", "while", "with",
})

# Words that can sit where a return type would be in a call or control-flow line.
STATEMENT_WORDS: FrozenSet[str] = frozenset({
    "if", "for", "while", "switch", "catch", "return", "throw", "new", "await",
    "else", "do", "try", "case", "assert", "yield", "in", "is", "as", "rethrow",
})

# Framework methods that are invoked by the runtime rather than by user code.
PREBUILT_FRAMEWORK_METHODS: FrozenSet[str] = frozenset({
    # Core Dart
    "print", "debugPrint", "main", "runApp", "runZoned", "toString", "hashCode",
    "noSuchMethod",
    # Widget lifecycle
    "createElement", "canUpdate", "createState", "initState",
    "didChangeDependencies", "didUpdateWidget", "reassemble", "deactivate",
    "dispose",
    # Render objects
    "createRenderObject", "updateRenderObject", "didUnmountRenderObject",
    "performLayout", "performResize", "paint", "hitTest", "hitTestSelf",
    "hitTestChildren", "applyPaintTransform", "getTransformTo",
    "getDistanceToActualBaseline", "computeMinIntrinsicWidth",
    "computeMaxIntrinsicWidth", "computeMinIntrinsicHeight",
    "computeMaxIntrinsicHeight", "performCommit", "adoptChild", "dropChild",
    "visitChildren", "redepthChildren", "attach", "detach", "showOnScreen",
    "describeSemanticsConfiguration", "assembleSemanticsNode", "clearSemantics",
    # Inherited widget
    "updateShouldNotify",
    # Animation
    "addListener", "removeListener", "addStatusListener", "removeStatusListener",
    # Stream controller
    "onListen", "onPause", "onResume", "onCancel",
    # Element
    "mount", "updateSlotForChild", "attachRenderObject", "detachRenderObject",
    "unmount", "performRebuild", "debugVisitOnstageChildren",
    "debugDescribeChildren",
    # Ticker
    "start", "shouldScheduleTick", "unscheduleTick",
    # App lifecycle and binding observer
    "didChangeAppLifecycleState", "didHaveMemoryPressure", "didChangeLocales",
    "didChangeTextScaleFactor", "didChangePlatformBrightness",
    "didChangeAccessibilityFeatures", "didChangeMetrics", "didRequestAppExit",
    "didPopRoute", "didPushRoute", "didPushRouteInformation",
    # Hero
    "createRectTween", "flightShuttleBuilder", "placeholderBuilder",
    # Page route
    "buildPage", "buildTransitions", "canTransitionFrom", "canTransitionTo",
    # Custom painter
    "shouldRepaint", "shouldRebuildSemantics", "semanticsBuilder",
    # Slivers
    "childMainAxisPosition", "childCrossAxisPosition", "childScrollOffset",
    "calculatePaintOffset", "calculateCacheOffset", "childExistingScrollOffset",
    "updateOutOfBandData", "updateParentData",
    # Platform channel
    "setMethodCallHandler",
})

# Names visible in every Dart library without an import (dart:core).
IMPLICIT_CORE_TYPES: FrozenSet[str] = frozenset({
    "Object", "String", "int", "double", "bool", "List", "Map", "Set",
    "Iterable", "Iterator", "Function", "Symbol", "Type", "Null", "dynamic",
    "void", "Never", "Future", "Stream", "Duration", "DateTime", "RegExp",
    "StringBuffer", "Exception", "Error", "ArgumentError", "StateError",
    "UnsupportedError", "UnimplementedError", "FormatException",
    "IntegerDivisionByZeroException", "RangeError", "IndexError",
    "NoSuchMethodError", "AbstractClassInstantiationError",
    "CyclicInitializationError",
})

CORE_LIBRARY_PREFIXES = ("dart:",)
CORE_LIBRARY_MARKERS = ("package:flutter/", "package:dart/")


def class_kind_for(line: str, base_kind: str) -> str:
    """Refine a matched `class` declaration into its modifier/widget kind.

    Only the text before the `class` keyword is searched for modifiers, so a
    class named e.g. `BaseballBat` is not mistaken for a `base class`.

    Args:
        line: The declaration line
        base_kind: Kind from the declaration pattern table

    Returns:
        The refined kind (unchanged for non-class declarations)
    """
    if base_kind != "class":
        return base_kind

    match = re.search(r"\bclass\b", line)
    prefix = line[:match.start()] if match else ""
    modifiers = set(re.findall(r"\b(sealed|base|final|interface|abstract)\b", prefix))
    for modifier in ("sealed", "base", "final", "interface", "abstract"):
        if modifier in modifiers:
            return f"{modifier}_class"

    if re.search(r"\bextends\s+State\s*<", line):
        return "state_class"
    if re.search(r"\bextends\s+StatelessWidget\b", line):
        return "stateless_widget"
    if re.search(r"\bextends\s+StatefulWidget\b", line):
        return "stateful_widget"
    return "class"


def match_declaration(line: str) -> Optional[Tuple[str, str, DeclarationPattern]]:
    """Find the first declaration pattern that matches a line.

    Args:
        line: One physical source line

    Returns:
        (name, kind, pattern) or None when nothing matches or the captured name
        is a reserved word
    """
    for pattern in DECLARATION_PATTERNS:
        match = pattern.regex.search(line)
        if not match:
            continue
        raw = match.group(1)
        if pattern.label == "Anonymous extension":
            name = "ExtensionOn " + re.sub(r"[<>,\s]", "", raw)
        else:
            # `Ext<T>` is referenced as `Ext`
            name = raw.split("<", 1)[0]
            if name in KEYWORDS:
                return None
        return name, class_kind_for(line, pattern.kind), pattern
    return None


def is_core_library(path: str) -> bool:
    return path.startswith(CORE_LIBRARY_PREFIXES) or any(m in path for m in CORE_LIBRARY_MARKERS)


def has_entry_point_pragma(lines: Sequence[str], index: int, max_lines: int) -> bool:
    """Look back over up to max_lines non-blank lines for an entry-point pragma.

    The search stops at the first line that is real code rather than a
    comment or annotation.

    Args:
        lines: All lines of the file
        index: 0-based index of the declaration line
        max_lines: Number of non-blank preceding lines to inspect

    Returns:
        True if a recognized @pragma annotates the declaration
    """
    seen = 0
    for i in range(index - 1, -1, -1):
        line = lines[i].strip()
        if not line:
            continue
        if PRAGMA_REGEX.match(line):
            return True
        seen += 1
        if seen >= max_lines:
            break
        if not line.startswith(("//", "/*", "*", "@")):
            break
    return False
