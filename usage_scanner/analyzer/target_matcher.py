"""Target matching: which components a scan is looking for."""
import os
from pathlib import Path
from typing import FrozenSet, Iterable, Optional

from ..inputs import COMMENT_MARKER, read_tokens
from .workspace import PROJECT_FILE

PROJECT_FILE_SUFFIX = Path(PROJECT_FILE).suffix
SEPARATORS = ('/', '\\')


def normalize_path(path: Optional[str | Path]) -> str:
    """Absolute path with canonical separators and no trailing separator.

    Returns '' for empty input.
    """
    if path is None:
        return ''
    text = str(path).strip()
    if not text:
        return ''
    for sep in SEPARATORS:
        text = text.replace(sep, os.sep)
    full = os.path.abspath(text)
    return full.rstrip(os.sep) or os.sep


def looks_like_path(token: str) -> bool:
    """A token is path-like if it has a separator or names a project file."""
    return token.lower().endswith(PROJECT_FILE_SUFFIX) or any(sep in token for sep in SEPARATORS)


class TargetMatcher:
    """Union of exact-name, exact-project-file and folder-prefix rules.

    Built once from free-form tokens, immutable afterwards.
    """

    def __init__(self, tokens: Iterable[str] = ()):
        names, paths, prefixes = set(), set(), set()
        for raw in tokens:
            token = raw.strip()
            if not token or token.startswith(COMMENT_MARKER):
                continue
            if not looks_like_path(token):
                names.add(token.casefold())
                continue
            full = normalize_path(token)
            if full.lower().endswith(PROJECT_FILE_SUFFIX):
                paths.add(full.casefold())
            else:
                prefixes.add(full.casefold())

        self._names: FrozenSet[str] = frozenset(names)
        self._paths: FrozenSet[str] = frozenset(paths)
        self._prefixes: FrozenSet[str] = frozenset(prefixes)

    @classmethod
    def from_sources(cls, single: Optional[str] = None, tokens_file: Optional[str | Path] = None) -> 'TargetMatcher':
        """Combine a single CLI token with the tokens of a list file."""
        tokens = [single] if single and single.strip() else []
        tokens.extend(read_tokens(tokens_file))
        return cls(tokens)

    @property
    def exact_names(self) -> FrozenSet[str]:
        return self._names

    @property
    def exact_paths(self) -> FrozenSet[str]:
        return self._paths

    @property
    def folder_prefixes(self) -> FrozenSet[str]:
        return self._prefixes

    @property
    def is_empty(self) -> bool:
        return not (self._names or self._paths or self._prefixes)

    def matches(self, name: Optional[str], path: Optional[str | Path]) -> bool:
        """True if the component name or project file path satisfies any rule."""
        if name and name.casefold() in self._names:
            return True

        norm = normalize_path(path).casefold()
        if not norm:
            return False
        if norm in self._paths:
            return True
        for prefix in self._prefixes:
            boundary = prefix if prefix.endswith(os.sep) else prefix + os.sep
            if norm.startswith(boundary):
                return True
        return False

    def __repr__(self) -> str:
        return (f"TargetMatcher(names={sorted(self._names)}, paths={sorted(self._paths)}, "
                f"prefixes={sorted(self._prefixes)})")
