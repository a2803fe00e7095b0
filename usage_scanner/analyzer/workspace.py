"""Workspace loading: discovers the components of a multi-project Python tree.

A component is any directory holding a ``pyproject.toml``. Its unit
identities are the top-level import names it provides; those are what a
resolved symbol is attributed by.
"""
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..utils.logger import log_warning

PROJECT_FILE = "pyproject.toml"

# Directories that never hold first-party sources
EXCLUDED_DIRS = {
    '.git', '.hg', '.svn', '.idea', '.vscode',
    'venv', '.venv', 'env', '.virtualenv', '.tox', '.nox',
    'site-packages', 'node_modules', '__pycache__',
    'build', 'dist', '.eggs',
    '.pytest_cache', '.mypy_cache', '.ruff_cache',
}

# Top-level names that are part of a project but never an importable unit
NON_UNIT_NAMES = {'tests', 'test', 'docs', 'doc', 'scripts', 'examples', 'benchmarks', 'setup', 'conftest', 'noxfile'}

GENERATED_SUFFIXES = ('_pb2.py', '_pb2_grpc.py')
GENERATED_MARKERS = (b'@generated', b'DO NOT EDIT')


class WorkspaceError(Exception):
    """Raised when a workspace cannot be opened."""


@dataclass(frozen=True)
class Component:
    """An independently built project of the workspace."""
    name: str
    path: str  # absolute path of the project file
    unit_identity: str
    identities: tuple = ()  # every top-level import name, unit_identity first
    code_dirs: tuple = field(default=(), compare=False)


def normalize_project_name(name: str) -> str:
    """PEP 503 style normalization, mapped onto an import name."""
    return re.sub(r"[-_.]+", "_", name).lower()


def is_generated(file_path: Path) -> bool:
    """Detect generated sources, which are excluded from scanning."""
    if file_path.name.endswith(GENERATED_SUFFIXES):
        return True
    try:
        with open(file_path, 'rb') as f:
            head = f.read(512)
    except OSError:
        return False
    return any(marker in head for marker in GENERATED_MARKERS)


class Workspace:
    """Components and module layout of a workspace root."""

    def __init__(self, root_path: str | Path):
        """Discover every component under root_path.

        Args:
            root_path: Workspace root directory

        Raises:
            WorkspaceError: If the root does not exist or holds no component
        """
        self.root_path = Path(root_path).resolve()
        if not self.root_path.is_dir():
            raise WorkspaceError(f"Workspace not found: {self.root_path}")

        self.components: List[Component] = []
        # dotted module name -> file defining it (first registration wins)
        self.module_paths: Dict[str, Path] = {}
        self._documents: Dict[str, List[Path]] = {}
        self._module_names: Dict[Path, str] = {}

        self._discover_components()
        if not self.components:
            raise WorkspaceError(f"No {PROJECT_FILE} found under {self.root_path}")

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def _discover_components(self):
        project_files = sorted(
            p for p in self.root_path.rglob(PROJECT_FILE)
            if not self._is_excluded(p.parent)
        )
        project_dirs = {p.parent for p in project_files}

        for project_file in project_files:
            try:
                with project_file.open("rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                log_warning("Workspace", f"Could not process {project_file}: {e}")
                continue

            project_dir = project_file.parent
            name = self._project_name(data, project_dir)
            code_dirs = self._find_code_dirs(project_dir)
            # Projects below this one own their files; enclosing ones do not matter
            nested = {p for p in project_dirs if project_dir in p.parents}
            files = self._collect_sources(project_dir, nested)

            identities = self._get_top_level_importables(code_dirs, nested)
            primary = normalize_project_name(name)
            if primary in identities:
                identities.remove(primary)
                identities.insert(0, primary)
            unit_identity = identities[0] if identities else primary

            component = Component(
                name=name,
                path=str(project_file),
                unit_identity=unit_identity,
                identities=tuple(identities) or (unit_identity,),
                code_dirs=tuple(code_dirs),
            )
            self.components.append(component)
            self._documents[component.path] = files
            self._register_modules(files, code_dirs, project_dir)

    def _is_excluded(self, directory: Path) -> bool:
        try:
            parts = directory.relative_to(self.root_path).parts
        except ValueError:
            return True
        return any(part in EXCLUDED_DIRS or part.endswith('.egg-info') for part in parts)

    @staticmethod
    def _project_name(data: dict, project_dir: Path) -> str:
        name = data.get("project", {}).get("name")
        if not name:
            name = data.get("tool", {}).get("poetry", {}).get("name")
        return name or project_dir.name

    @staticmethod
    def _find_code_dirs(project_dir: Path) -> List[Path]:
        src_dir = project_dir / "src"
        if src_dir.is_dir():
            return [src_dir, project_dir]
        return [project_dir]

    def _get_top_level_importables(self, code_dirs: List[Path], nested_projects: Set[Path]) -> List[str]:
        names: List[str] = []
        # Only the first code dir defines units; the project root of a
        # src layout holds tests and tooling
        for item in sorted(code_dirs[0].iterdir()):
            item_name = item.name
            if item_name in EXCLUDED_DIRS or item_name.startswith('.') or item_name.endswith('.egg-info'):
                continue
            if item.is_dir():
                unit = item_name
                if unit == 'src' or next(item.rglob('*.py'), None) is None:
                    continue
                if any(p == item or item in p.parents for p in nested_projects):
                    continue
            elif item.suffix == '.py' and item.stem != '__init__':
                unit = item.stem
            else:
                continue
            if unit not in NON_UNIT_NAMES and unit.isidentifier():
                names.append(unit)
        return names

    def _collect_sources(self, project_dir: Path, nested_projects: Set[Path]) -> List[Path]:
        files = []
        for file_path in project_dir.rglob('*.py'):
            if self._is_excluded(file_path.parent):
                continue
            if any(parent in nested_projects for parent in file_path.parents):
                continue
            if is_generated(file_path):
                continue
            files.append(file_path)
        return sorted(files)

    def _register_modules(self, files: List[Path], code_dirs: List[Path], project_dir: Path):
        for file_path in files:
            base = next((d for d in code_dirs if d in file_path.parents), project_dir)
            parts = list(file_path.relative_to(base).with_suffix('').parts)
            if parts[-1] == '__init__':
                parts.pop()
            if not parts:
                continue
            module_name = '.'.join(parts)
            self._module_names[file_path] = module_name
            self.module_paths.setdefault(module_name, file_path)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def documents(self, component: Component) -> List[Path]:
        """Regular source files of a component, sorted."""
        return list(self._documents.get(component.path, []))

    def module_name(self, file_path: Path) -> Optional[str]:
        """Dotted module name of a workspace file."""
        return self._module_names.get(Path(file_path))

    def find_components(self, names) -> List[Component]:
        """Components whose name is in names (case-insensitive)."""
        wanted = {n.casefold() for n in names}
        return [c for c in self.components if c.name.casefold() in wanted]

    def component_names(self) -> List[str]:
        return sorted((c.name for c in self.components), key=str.casefold)
