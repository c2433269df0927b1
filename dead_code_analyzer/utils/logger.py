"""Logging setup and terminal-safe text.

Installs a single loguru stderr sink and, on terminals that cannot encode
UTF-8, swaps the icons and box characters used in reports for ASCII.
"""
import locale
import sys

from loguru import logger


# Characters that show up in report output, with their ASCII fallbacks
ICON_MAP = {
    '✓': '[OK]',
    '✔': '[OK]',
    '✅': '[OK]',
    '✗': '[FAIL]',
    '❌': '[FAIL]',
    '⚠️': '[WARN]',
    '⚠': '[WARN]',
    '💀': '[DEAD]',
    '🎯': '[ENTRY]',
    '💬': '[COMMENTED]',
    '📁': '[dir]',
    '📄': '[file]',
    '🔍': '[search]',
    '📊': '[stats]',
    '→': '->',
    '←': '<-',
    '…': '...',
    '•': '*',
    '│': '|',
    '─': '-',
    '┌': '+',
    '┐': '+',
    '└': '+',
    '┘': '+',
    '├': '+',
    '┤': '+',
}

LOG_FORMAT = "<level>{level: <8}</level> | <cyan>{name}</cyan> - {message}"


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding.

    Returns:
        str: Lowercased encoding name ('utf-8', 'cp1252', 'ascii', ...)
    """
    if getattr(sys.stdout, 'encoding', None):
        return sys.stdout.encoding.lower()
    try:
        return locale.getpreferredencoding().lower()
    except (LookupError, ValueError):
        return 'ascii'


def is_utf8_capable() -> bool:
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str, force: bool = False) -> str:
    """Replace known icons with ASCII equivalents when the terminal needs it.

    Args:
        text: Text potentially containing icons
        force: Sanitize even on a UTF-8 terminal

    Returns:
        str: Text safe for the current terminal
    """
    if not force and is_utf8_capable():
        return text

    for unicode_char, ascii_replacement in ICON_MAP.items():
        text = text.replace(unicode_char, ascii_replacement)
    return text


def _stderr_sink(message) -> None:
    sys.stderr.write(sanitize_for_terminal(str(message)))


def configure_logging(level: str = "WARNING") -> None:
    """Route loguru output to stderr at the given level.

    Removes loguru's default handler so repeated calls do not duplicate
    output.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
    """
    logger.remove()
    logger.add(_stderr_sink, level=level.upper(), format=LOG_FORMAT, colorize=False)
