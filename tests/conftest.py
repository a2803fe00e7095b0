"""Shared fixtures: small multi-project workspaces written into tmp_path."""
from pathlib import Path
from typing import Dict

import pytest

from usage_scanner.config import reset_config


VIEWS_SOURCE = "\n".join([
    "from libcore import Helper",                                   # 1
    "from libcore.helpers import make_helper, DEFAULT_TIMEOUT",     # 2
    "import libcore.helpers",                                       # 3
    "import json",                                                  # 4
    "",                                                             # 5
    "",                                                             # 6
    "class View:",                                                  # 7
    "    timeout = DEFAULT_TIMEOUT",                                # 8
    "",                                                             # 9
    "    def handle(self, x: int):",                                # 10
    "        helper = Helper(x)",                                   # 11
    "        helper.do_work(x); helper.ping()",                     # 12
    "        return json.dumps(x)",                                 # 13
    "",                                                             # 14
    "",                                                             # 15
    "def build():",                                                 # 16
    "    return libcore.helpers.make_helper().do_work(1)",          # 17
    "",
])

HELPERS_SOURCE = '''\
class Base:
    def ping(self):
        return "pong"


class Helper(Base):
    def __init__(self, value=None):
        self.value = value

    def do_work(self, x):
        return x


def make_helper() -> Helper:
    return Helper()


DEFAULT_TIMEOUT = 30
'''


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write {relative path: content} under root."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
    return root


SAMPLE_FILES = {
    # Lib.Core: src layout, re-exports Helper from its package root
    'libcore/pyproject.toml': '[project]\nname = "Lib.Core"\nversion = "0.1"\n',
    'libcore/src/libcore/__init__.py': 'from .helpers import Helper\n\n__all__ = ["Helper"]\n',
    'libcore/src/libcore/helpers.py': HELPERS_SOURCE,
    # Lib.Other: flat layout
    'libother/pyproject.toml': '[project]\nname = "Lib.Other"\n',
    'libother/libother/__init__.py': 'def do_work(x):\n    return x\n',
    # App.Web: consumer
    'apps/web/pyproject.toml': '[project]\nname = "App.Web"\n',
    'apps/web/web/__init__.py': '',
    'apps/web/web/views.py': VIEWS_SOURCE,
    'apps/web/web/other_use.py': 'from libother import do_work\n\n\ndef run():\n    return do_work(1)\n',
}


@pytest.fixture
def sample_workspace(tmp_path) -> Path:
    """Workspace with two libraries and one consuming application."""
    return write_tree(tmp_path / 'ws', SAMPLE_FILES)


@pytest.fixture(autouse=True)
def fresh_config():
    """Every test starts without a cached Config."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def make_workspace(tmp_path):
    """Factory writing a workspace from a {relative path: content} mapping."""
    def _make(files: Dict[str, str], name: str = 'ws') -> Path:
        return write_tree(tmp_path / name, files)
    return _make
