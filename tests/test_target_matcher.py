"""Tests for target token classification and matching."""
import os

import pytest

from usage_scanner.analyzer.target_matcher import TargetMatcher, looks_like_path, normalize_path


class TestClassification:
    """Tokens are sorted into names, project files and folder prefixes."""

    def test_bare_name(self):
        matcher = TargetMatcher(["Lib.Core"])
        assert matcher.exact_names == {"lib.core"}
        assert not matcher.exact_paths
        assert not matcher.folder_prefixes

    def test_project_file_path(self, tmp_path):
        token = str(tmp_path / "libs" / "core" / "pyproject.toml")
        matcher = TargetMatcher([token])
        assert matcher.exact_paths == {normalize_path(token).casefold()}
        assert not matcher.exact_names

    def test_folder_with_trailing_separator(self, tmp_path):
        matcher = TargetMatcher([str(tmp_path / "libs") + os.sep])
        assert matcher.folder_prefixes == {str(tmp_path / "libs").casefold()}

    def test_backslash_is_a_separator(self):
        matcher = TargetMatcher([r"libs\core"])
        assert matcher.folder_prefixes == {normalize_path("libs/core").casefold()}

    def test_blank_and_comment_tokens_ignored(self):
        matcher = TargetMatcher(["", "   ", "# Lib.Core"])
        assert matcher.is_empty

    @pytest.mark.parametrize("token,expected", [
        ("Lib.Core", False),
        ("pyproject.toml", True),
        ("custom.TOML", True),
        ("libs/core", True),
        (r"libs\core", True),
    ])
    def test_looks_like_path(self, token, expected):
        assert looks_like_path(token) is expected


class TestMatching:

    def test_name_is_case_insensitive(self):
        matcher = TargetMatcher(["lib.core"])
        assert matcher.matches("Lib.Core", None)

    def test_name_does_not_match_substring(self):
        """A bare name never matches a longer component name."""
        matcher = TargetMatcher(["Lib"])
        assert not matcher.matches("Lib.Core", "/elsewhere/pyproject.toml")
        assert not matcher.matches("MyLib", None)

    def test_exact_project_file(self, tmp_path):
        project_file = tmp_path / "libs" / "core" / "pyproject.toml"
        matcher = TargetMatcher([str(project_file)])
        assert matcher.matches("anything", str(project_file))
        assert matcher.matches("anything", str(project_file).upper())
        assert not matcher.matches("anything", str(tmp_path / "libs" / "other" / "pyproject.toml"))

    def test_prefix_requires_separator_boundary(self, tmp_path):
        """src/Lib does not cover src/LibExtra."""
        matcher = TargetMatcher([str(tmp_path / "src" / "Lib")])
        assert matcher.matches("x", str(tmp_path / "src" / "Lib" / "Core" / "pyproject.toml"))
        assert not matcher.matches("x", str(tmp_path / "src" / "LibExtra" / "pyproject.toml"))

    def test_prefix_is_case_insensitive(self, tmp_path):
        matcher = TargetMatcher([str(tmp_path / "SRC")])
        assert matcher.matches("x", str(tmp_path / "src" / "a" / "pyproject.toml"))

    def test_missing_path_only_matches_by_name(self, tmp_path):
        matcher = TargetMatcher([str(tmp_path)])
        assert not matcher.matches("x", None)
        assert not matcher.matches("x", "")

    def test_union_of_rules(self, tmp_path):
        matcher = TargetMatcher(["Lib.Core", str(tmp_path / "vendor")])
        assert matcher.matches("Lib.Core", "/somewhere/pyproject.toml")
        assert matcher.matches("Other", str(tmp_path / "vendor" / "pkg" / "pyproject.toml"))
        assert not matcher.matches("Other", str(tmp_path / "app" / "pyproject.toml"))


class TestFromSources:

    def test_combines_single_token_and_file(self, tmp_path):
        targets = tmp_path / "targets.txt"
        targets.write_text("# shared libraries\nLib.Other\n\n", encoding="utf-8")
        matcher = TargetMatcher.from_sources("Lib.Core", targets)
        assert matcher.exact_names == {"lib.core", "lib.other"}

    def test_missing_file_and_no_token_is_empty(self, tmp_path):
        matcher = TargetMatcher.from_sources(None, tmp_path / "missing.txt")
        assert matcher.is_empty

    def test_blank_single_token_ignored(self):
        assert TargetMatcher.from_sources("  ", None).is_empty
