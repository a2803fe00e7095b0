"""Tree-sitter parser for Python sources."""
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_python as tspython


class LanguageParser:
    """Python parser using the tree-sitter v0.22+ API."""

    def __init__(self):
        self.parser = Parser(Language(tspython.language()))

    def parse_file(self, file_path: str | Path) -> Optional[tuple[Tree, bytes]]:
        """Parse file and return the tree together with the raw source.

        Args:
            file_path: Path to source file to parse

        Returns:
            (Tree, source bytes), or None if the file cannot be read
        """
        file_path = Path(file_path)
        try:
            source_code = file_path.read_bytes()
        except OSError:
            return None
        return self.parser.parse(source_code), source_code

