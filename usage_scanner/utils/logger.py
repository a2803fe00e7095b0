"""Terminal-safe diagnostics for scan output.

Detects terminal encoding, replaces the few Unicode glyphs the scanner prints
with ASCII on terminals that cannot render them, and routes warnings and
fatal errors to stderr.
"""
import sys
import locale

from rich.markup import escape


# Unicode to ASCII mapping for non-UTF-8 terminals
ICON_MAP = {
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',
    '→': '->',
    '…': '...',
    '•': '*',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if getattr(sys.stdout, 'encoding', None):
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except Exception:
        return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 output."""
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str) -> str:
    """Replace Unicode glyphs with ASCII equivalents if the terminal needs it.

    Args:
        text: Text potentially containing Unicode glyphs

    Returns:
        str: Text safe for the current terminal
    """
    if is_utf8_capable():
        return text

    for unicode_char, ascii_replacement in ICON_MAP.items():
        text = text.replace(unicode_char, ascii_replacement)
    return text


_error_console = None


def error_console():
    """Shared stderr console for diagnostics."""
    global _error_console
    if _error_console is None:
        from .safe_console import SafeConsole
        _error_console = SafeConsole(stderr=True)
    return _error_console


def log_warning(source: str, message: str):
    """Report a recoverable condition. Never affects the exit code.

    Args:
        source: Short name of the reporting component (e.g. 'Resolver')
        message: Human readable description
    """
    error_console().print(f"[yellow]\\[{escape(source)}] ⚠ {escape(message)}[/yellow]")


def log_error(message: str):
    """Report a fatal condition on stderr."""
    error_console().print(f"[bold red]Error:[/bold red] {escape(message)}")
