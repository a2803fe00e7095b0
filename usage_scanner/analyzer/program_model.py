"""Program model boundary: parsed documents, reference nodes and symbol resolution.

The reference resolver only talks to a ProgramModelProvider. The tree-sitter
implementation lives in python_model; tests substitute scripted providers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .workspace import Component


class ProgramModelError(Exception):
    """Raised when a document's syntax or semantics cannot be retrieved."""


@dataclass(frozen=True)
class DefinitionLocation:
    """Where a declaration lives in the workspace sources."""
    path: str
    line: int


@dataclass(frozen=True)
class Symbol:
    """A declared entity as seen by the resolver.

    ``original`` links an alias (an import binding, a re-export) to the
    declaration it stands for, and an overriding method to the base class
    declaration it overrides. Symbols without a location come from outside
    the workspace.
    """
    qualified_name: str
    kind: str  # module, class, function, method, attribute, variable, alias
    unit_identity: Optional[str]
    location: Optional[DefinitionLocation] = None
    original: Optional['Symbol'] = field(default=None, compare=False, repr=False)

    @property
    def in_source(self) -> bool:
        return self.location is not None

    def original_definition(self) -> 'Symbol':
        """Follow alias links down to the declaring symbol."""
        current = self
        seen = set()
        while current.original is not None and id(current) not in seen:
            seen.add(id(current))
            current = current.original
        return current


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one reference node."""
    symbol: Optional[Symbol] = None
    candidates: Tuple[Symbol, ...] = ()

    @classmethod
    def exact(cls, symbol: Symbol) -> 'Resolution':
        return cls(symbol=symbol)

    @classmethod
    def ambiguous(cls, candidates: Iterable[Symbol]) -> 'Resolution':
        candidates = tuple(candidates)
        if len(candidates) == 1:
            return cls(symbol=candidates[0])
        return cls(candidates=candidates)

    @classmethod
    def unresolved(cls) -> 'Resolution':
        return cls()

    @property
    def is_ambiguous(self) -> bool:
        return self.symbol is None and len(self.candidates) > 1


@dataclass
class SourceDocument:
    """A parsed source file of a component."""
    path: Path
    module_name: str
    lines: List[str]
    tree: Any = None
    source: bytes = b''

    def line_text(self, line: int) -> str:
        """Text of a 1-based line, or '' when out of range."""
        if line < 1 or line > len(self.lines):
            return ''
        return self.lines[line - 1]


@dataclass(frozen=True)
class SyntaxReference:
    """A syntax node that may denote the use of a declared name."""
    node: Any
    line: int  # 1-based line of the node's start
    enclosing_member: str


class ProgramModelProvider(ABC):
    """Syntax and symbol services over a loaded workspace."""

    @abstractmethod
    def documents(self, component: Component) -> List[Path]:
        """Regular source files of a component."""

    @abstractmethod
    def open_document(self, component: Component, path: Path) -> SourceDocument:
        """Parse a document.

        Raises:
            ProgramModelError: If the document cannot be read or parsed
        """

    @abstractmethod
    def references(self, document: SourceDocument) -> Iterable[SyntaxReference]:
        """Reference candidates of a document, in source order."""

    @abstractmethod
    def resolve(self, document: SourceDocument, reference: SyntaxReference) -> Resolution:
        """Resolve a reference to the symbol it denotes."""
