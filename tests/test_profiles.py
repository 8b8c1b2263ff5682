"""Tests for the language profile registry."""

from __future__ import annotations

import json

from cellexec.models import ExecutionMode, LanguageProfile
from cellexec.profiles import DEFAULT_PROFILE, LanguageRegistry


def test_bundled_table_loads():
    registry = LanguageRegistry.load()
    for key in ("javascript", "typescript", "python", "bash", "html", "react", "vue"):
        assert key in registry
    assert registry.resolve("javascript").command_template == "node {file}"
    assert registry.resolve("react").execution_mode is ExecutionMode.RENDER_REACT
    assert registry.resolve("java").unique_filename is False


def test_unknown_key_resolves_to_default_terminal_profile():
    registry = LanguageRegistry.load()
    for key in ("cobol", "", None, "  "):
        profile = registry.resolve(key)
        assert profile is registry.default
        assert profile.execution_mode is ExecutionMode.TERMINAL


def test_resolve_is_case_insensitive_and_applies_aliases():
    registry = LanguageRegistry.load()
    assert registry.resolve("Python").key == "python"
    assert registry.resolve("py").key == "python"
    assert registry.resolve("typescriptreact").key == "react"
    assert "JS" in registry


def test_missing_table_degrades_to_default(tmp_path):
    registry = LanguageRegistry.load(tmp_path / "missing.json")
    assert len(registry) == 0
    assert registry.resolve("python") == DEFAULT_PROFILE


def test_malformed_table_degrades_to_default(tmp_path):
    path = tmp_path / "languages.json"
    path.write_text("{ not json", encoding="utf-8")
    registry = LanguageRegistry.load(path)
    assert registry.resolve("javascript") == DEFAULT_PROFILE

    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert len(LanguageRegistry.load(path)) == 0


def test_invalid_entries_are_skipped(tmp_path):
    path = tmp_path / "languages.json"
    path.write_text(
        json.dumps(
            {
                "python": {"command": "python3 {file}", "filename": "a.py"},
                "broken": {"uniqueFilename": "sometimes"},
                "scalar": "python3",
            }
        ),
        encoding="utf-8",
    )
    registry = LanguageRegistry.load(path)
    assert registry.keys() == ["python"]
    assert registry.resolve("broken") is registry.default


def test_table_keys_and_unknown_execution_type(tmp_path):
    path = tmp_path / "languages.json"
    path.write_text(
        json.dumps(
            {
                "Ruby": {
                    "executionType": "quantum",
                    "command": "ruby {file}",
                    "filename": "t.rb",
                    "deletefile": " a.out ,, /tmp/x.log ",
                    "templatecode": "puts 1",
                    "promptHint": "ignored",
                }
            }
        ),
        encoding="utf-8",
    )
    profile = LanguageRegistry.load(path).resolve("ruby")
    assert profile.key == "ruby"
    assert profile.execution_mode is ExecutionMode.TERMINAL
    assert profile.seed_code == "puts 1"
    assert profile.cleanup_targets() == ["a.out", "/tmp/x.log"]


def test_registry_default_comes_from_table_when_present():
    custom = LanguageProfile(key="javascript", command_template="deno run {file}")
    registry = LanguageRegistry({"javascript": custom})
    assert registry.resolve("unknown").command_template == "deno run {file}"
