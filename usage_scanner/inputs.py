"""Newline-delimited name and token lists."""
from pathlib import Path
from typing import Iterator, List, Optional

COMMENT_MARKER = "#"


def read_tokens(file_path: Optional[str | Path]) -> Iterator[str]:
    """Yield the meaningful lines of a list file.

    Lines are trimmed; blank lines and lines starting with the comment
    marker are skipped. A missing file yields nothing.
    """
    if not file_path:
        return
    file_path = Path(file_path)
    if not file_path.is_file():
        return
    with open(file_path, 'r', encoding='utf-8-sig') as f:
        for raw in f:
            line = raw.strip()
            if line and not line.startswith(COMMENT_MARKER):
                yield line


def load_names(file_path: Optional[str | Path]) -> List[str]:
    """Load a name list, de-duplicated case-insensitively.

    The first spelling of a name is kept and file order is preserved.
    """
    seen = set()
    names = []
    for name in read_tokens(file_path):
        key = name.casefold()
        if key not in seen:
            seen.add(key)
            names.append(name)
    return names
