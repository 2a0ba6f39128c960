"""Tests for the FileIgnorer rules."""

import pytest

from pydrivemap.exceptions import InvalidArgumentError
from pydrivemap.mapping.ignore import IGNORE_FILE_NAME, FileIgnorer, load_ignore_file


class TestFileIgnorer:
    """Tests for matching paths against ignore rules."""

    def test_rules_are_anchored_to_base_directory(self, tmp_path):
        ignorer = FileIgnorer(tmp_path, [r"build/.*"])

        assert ignorer.is_ignored(tmp_path / "build" / "out.o")
        assert not ignorer.is_ignored(tmp_path / "src" / "build" / "out.o")
        assert not ignorer.is_ignored(tmp_path / "build")

    def test_rules_do_not_match_above_base_directory(self, tmp_path):
        """A rule never matches paths outside its base directory."""
        base = tmp_path / "Photos"
        base.mkdir()
        ignorer = FileIgnorer(base, [r".*"])

        assert ignorer.is_ignored(base / "raw")
        assert not ignorer.is_ignored(tmp_path / "other")

    def test_default_ignorer_cannot_be_overridden(self, tmp_path):
        """Paths ignored globally stay ignored under a local ignorer."""
        sub = tmp_path / "sub"
        sub.mkdir()
        global_rules = FileIgnorer(tmp_path, [r"(.*/)?\.git(/.*)?"])
        local = FileIgnorer(sub, [r"tmp"], default=global_rules)

        assert local.is_ignored(sub / ".git" / "config")
        assert local.is_ignored(sub / "tmp")
        assert not local.matches_locally(sub / ".git")
        assert not local.is_ignored(sub / "docs")

    def test_empty_ignorer(self, tmp_path):
        assert not FileIgnorer.empty(tmp_path).is_ignored(tmp_path / "anything")

    def test_missing_base_directory(self, tmp_path):
        with pytest.raises(InvalidArgumentError):
            FileIgnorer(tmp_path / "missing", ["x"])

    def test_invalid_rule(self, tmp_path):
        with pytest.raises(InvalidArgumentError, match="Invalid ignore rule"):
            FileIgnorer(tmp_path, ["("])


class TestIgnoreFile:
    """Tests for loading rules from a file."""

    def test_from_file_skips_comments_and_blank_lines(self, tmp_path):
        rules_file = tmp_path / IGNORE_FILE_NAME
        rules_file.write_text("# comment\n\nbuild/.*\n.*\\.log\n")

        ignorer = FileIgnorer.from_file(rules_file)

        assert ignorer.rules == ["build/.*", r".*\.log"]
        assert ignorer.base_directory == tmp_path
        assert ignorer.is_ignored(tmp_path / "debug.log")

    def test_load_ignore_file(self, tmp_path):
        (tmp_path / IGNORE_FILE_NAME).write_text("cache\n")
        default = FileIgnorer(tmp_path, ["other"])

        ignorer = load_ignore_file(tmp_path, default=default)

        assert ignorer is not None
        assert ignorer.default is default
        assert ignorer.is_ignored(tmp_path / "cache")
        assert ignorer.is_ignored(tmp_path / "other")

    def test_load_ignore_file_without_file(self, tmp_path):
        assert load_ignore_file(tmp_path) is None


class TestGlobalRules:
    """Global rules apply through every ignorer."""

    def test_matcher_without_rules_reports_global_ignores(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        global_rules = FileIgnorer(tmp_path, [r".*\.tmp"])
        local = FileIgnorer.empty(sub, default=global_rules)

        assert local.is_ignored(sub / "x.tmp")
        assert not local.matches_locally(sub / "x.tmp")

    def test_local_rule_only_applies_locally(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        global_rules = FileIgnorer(tmp_path, [r".*\.tmp"])
        local = FileIgnorer(sub, ["notes"], default=global_rules)

        assert local.is_ignored(sub / "notes")
        assert not global_rules.is_ignored(sub / "notes")
