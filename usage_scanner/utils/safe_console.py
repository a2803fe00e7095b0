"""Rich Console wrapper that degrades Unicode output on non-UTF-8 terminals."""
from typing import Any

from rich.console import Console

from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console that sanitizes string output when the terminal is not UTF-8.

    Rendering objects (tables, progress bars) pass through untouched; only
    plain strings are rewritten.
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
