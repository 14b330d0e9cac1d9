"""Tests for allow-list analysis and rule suggestions"""

import json
import tomllib

import pytest
import yaml

from claude_permission_guardian.analyze import (
    INJECTION_EXCLUDES,
    analyze_permissions,
    format_text,
    format_toml,
    format_yaml,
    load_allowlist,
    suggest_rules,
)
from claude_permission_guardian.cli import main
from claude_permission_guardian.config import build_config

PERMISSIONS = [
    "Bash(git add:*)",
    "Bash(git commit -m 'wip')",
    "Bash(git add .)",
    "Bash(timeout 30 dotnet test)",
    "Bash(ls -la)",
    "Read(//home/me/**)",
    "WebFetch(domain:example.com)",
    "Bash(echo \"open)",
]


@pytest.fixture
def groups():
    return analyze_permissions(PERMISSIONS)


class TestAnalyze:

    def test_groups_by_signature(self, groups):
        assert [g.pattern for g in groups] == ["git add", "git commit", "timeout dotnet test", "ls"]

    def test_counts_and_examples(self, groups):
        git_add = groups[0]
        assert git_add.count == 2
        assert git_add.examples == ["git add", "git add ."]

    def test_non_bash_and_unparsable_entries_are_skipped(self, groups):
        assert sum(g.count for g in groups) == 5

    def test_compound_entry_counts_each_command(self):
        groups = analyze_permissions(["Bash(cd src && make)"])
        assert [g.pattern for g in groups] == ["cd", "make"]

    def test_suggest_rules_groups_by_base_command(self, groups):
        rules = suggest_rules(groups)
        assert [r['description'] for r in rules] == [
            "git commands", "timeout commands", "ls commands"]
        assert rules[0]['commands'] == ["git add", "git commit"]
        assert rules[0]['exclude_patterns'] == INJECTION_EXCLUDES


class TestFormats:

    def test_yaml_output_is_a_valid_config(self, groups):
        text = format_yaml(groups)
        assert text.startswith("# Suggested configuration")
        config = build_config(yaml.safe_load(text))
        assert len(config.allow) == 3

    def test_toml_output_is_a_valid_config(self, groups):
        text = format_toml(groups)
        config = build_config(tomllib.loads(text))
        assert config.allow[0].commands == ("git add", "git commit")
        assert [p.pattern for p in config.allow[0].exclude_patterns] == INJECTION_EXCLUDES

    def test_text_output(self):
        groups = analyze_permissions([f"Bash(git status {i})" for i in range(5)])
        text = format_text(groups)
        assert "Pattern: git status" in text
        assert "Count: 5" in text
        assert "(2 more)" in text


class TestAllowlistFile:

    def test_load_allowlist(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps({'permissions': {'allow': ["Bash(ls)", 3]}}), encoding='utf-8')
        assert load_allowlist(path) == ["Bash(ls)"]

    def test_missing_permissions(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text('{}', encoding='utf-8')
        assert load_allowlist(path) == []

    @pytest.mark.parametrize('data', [
        {'permissions': []},
        {'permissions': 'Bash(ls)'},
        {'permissions': {'allow': 'Bash(ls)'}},
        ['Bash(ls)'],
    ])
    def test_malformed_settings_yield_nothing(self, tmp_path, data):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps(data), encoding='utf-8')
        assert load_allowlist(path) == []

    def test_cli_malformed_permissions(self, tmp_path, capsys):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps({'permissions': []}), encoding='utf-8')
        assert main(['analyze', '--allowlist', str(path), '--format', 'text']) == 0
        assert "Suggested command patterns:" in capsys.readouterr().out

    def test_cli(self, tmp_path, capsys):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps({'permissions': {'allow': PERMISSIONS}}), encoding='utf-8')
        assert main(['analyze', '--allowlist', str(path), '--format', 'text']) == 0
        assert "Pattern: git add" in capsys.readouterr().out

    def test_cli_missing_file(self, tmp_path, capsys):
        assert main(['analyze', '--allowlist', str(tmp_path / 'nope.json')]) == 1
        assert "Error reading allowlist" in capsys.readouterr().err
