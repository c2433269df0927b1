"""rich Console that degrades to ASCII on terminals without UTF-8."""
from typing import Any

from rich.console import Console

from .logger import is_utf8_capable, sanitize_for_terminal


class SafeConsole(Console):
    """Console whose print() sanitizes string arguments on non-UTF-8 terminals.

    Renderables such as tables are passed through unchanged; rich already
    picks ASCII box characters for legacy terminals.
    """

    def __init__(self, *args, **kwargs):
        self._needs_sanitization = not is_utf8_capable()
        if self._needs_sanitization:
            kwargs.setdefault('legacy_windows', True)
        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        if self._needs_sanitization:
            objects = tuple(
                sanitize_for_terminal(obj) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)
