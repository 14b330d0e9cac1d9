"""Tests for configuration loading and validation"""

from pathlib import Path

import pytest

from claude_permission_guardian.config import (
    AuditConfig,
    ConfigError,
    Rule,
    build_config,
    load_config,
)

EXAMPLE_CONFIG = Path(__file__).parent / 'claude_permission_guardian_config.yaml'

YAML_CONFIG = """
audit:
  audit_file: /tmp/audit.jsonl
  audit_level: all

system_config:
  debug_mode: true

multi_level_commands: [helm]
wrapper_commands: [xargs]
value_flags:
  helm: ["-n"]

deny:
  - tool: Bash
    commands: ["git push"]

allow:
  - tool: Bash
    description: git
    commands: ["git status", "git diff"]
    exclude_patterns: [";"]
  - tool: Read
    path_patterns: ["^/src/"]
"""

TOML_CONFIG = """
[audit]
audit_file = "/tmp/audit.jsonl"
audit_level = "off"

[[allow]]
tool = "Bash"
description = "git"
commands = ["git status"]

[[deny]]
tool = "Bash"
command_patterns = ["rm\\\\s+-rf"]
"""


@pytest.fixture
def write_config(tmp_path):
    def write(text, name='config.yaml'):
        path = tmp_path / name
        path.write_text(text, encoding='utf-8')
        return path
    return write


class TestLoading:

    def test_yaml(self, write_config):
        config = load_config(write_config(YAML_CONFIG))
        assert config.audit == AuditConfig(audit_file='/tmp/audit.jsonl', audit_level='all')
        assert config.debug_mode is True
        assert len(config.allow) == 2
        assert len(config.deny) == 1

        rule = config.allow[0]
        assert rule.tool == 'Bash'
        assert rule.description == 'git'
        assert rule.commands == ('git status', 'git diff')
        assert [p.pattern for p in rule.exclude_patterns] == [';']

    def test_yaml_capabilities(self, write_config):
        caps = load_config(write_config(YAML_CONFIG)).capabilities
        assert caps.has_subcommands('helm')
        assert caps.has_subcommands('git')
        assert caps.is_wrapper('xargs')
        assert caps.takes_value('helm', '-n')

    def test_toml(self, write_config):
        config = load_config(write_config(TOML_CONFIG, 'config.toml'))
        assert config.audit.audit_level == 'off'
        assert config.allow[0].commands == ('git status',)
        assert config.deny[0].command_patterns[0].search('rm  -rf /')

    def test_defaults_for_empty_file(self, write_config):
        config = load_config(write_config(''))
        assert config.allow == ()
        assert config.deny == ()
        assert config.audit == AuditConfig()
        assert config.debug_mode is False

    def test_example_config_loads(self):
        config = load_config(EXAMPLE_CONFIG)
        assert config.allow
        assert config.deny
        assert config.capabilities.has_subcommands('helm')

    def test_rules_for(self, write_config):
        config = load_config(write_config(YAML_CONFIG))
        assert [r.tool for r in config.rules_for('allow', 'Read')] == ['Read']
        assert config.rules_for('deny', 'Read') == []

    def test_tilde_path_is_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv('HOME', str(tmp_path))
        (tmp_path / 'guardian.yaml').write_text("allow: []\n", encoding='utf-8')
        assert load_config(Path('~/guardian.yaml')).allow == ()


class TestErrors:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(tmp_path / 'missing.yaml')

    def test_bad_yaml(self, write_config):
        with pytest.raises(ConfigError, match="Failed to parse config"):
            load_config(write_config("allow: [\n"))

    def test_bad_toml(self, write_config):
        with pytest.raises(ConfigError, match="Failed to parse config"):
            load_config(write_config("[[allow]\n", 'config.toml'))

    def test_top_level_must_be_mapping(self, write_config):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(write_config("- one\n- two\n"))

    def test_invalid_regex_names_rule_and_field(self):
        data = {'allow': [
            {'tool': 'Bash', 'commands': ['ls']},
            {'tool': 'Bash', 'command_patterns': ['ok', '(unclosed']},
        ]}
        with pytest.raises(ConfigError, match=r"allow rule 1: invalid command_patterns\[1\]"):
            build_config(data)

    def test_invalid_exclude_regex(self):
        data = {'deny': [{'tool': 'Read', 'path_exclude_patterns': ['[']}]}
        with pytest.raises(ConfigError, match=r"deny rule 0: invalid path_exclude_patterns\[0\]"):
            build_config(data)

    def test_unknown_tool(self):
        with pytest.raises(ConfigError, match="unknown tool 'Shell'"):
            build_config({'allow': [{'tool': 'Shell', 'commands': ['ls']}]})

    def test_missing_tool(self):
        with pytest.raises(ConfigError, match="missing 'tool'"):
            build_config({'allow': [{'commands': ['ls']}]})

    def test_unknown_field(self):
        with pytest.raises(ConfigError, match="unknown field"):
            build_config({'allow': [{'tool': 'Bash', 'command': ['ls']}]})

    def test_field_must_be_list(self):
        with pytest.raises(ConfigError, match="'commands' must be a list of strings"):
            build_config({'allow': [{'tool': 'Bash', 'commands': 'ls'}]})

    def test_rules_must_be_list(self):
        with pytest.raises(ConfigError, match="'allow' must be a list"):
            build_config({'allow': {'tool': 'Bash'}})

    def test_rule_must_be_table(self):
        with pytest.raises(ConfigError, match="allow rule 0: expected a table"):
            build_config({'allow': ['ls']})

    def test_bad_audit_level(self):
        with pytest.raises(ConfigError, match="invalid audit_level 'verbose'"):
            build_config({'audit': {'audit_level': 'verbose'}})

    def test_bad_value_flags(self):
        with pytest.raises(ConfigError):
            build_config({'value_flags': ['-n']})


class TestLegacyFields:

    def test_command_regex_is_translated(self):
        with pytest.warns(DeprecationWarning, match="command_regex"):
            rule = Rule.from_mapping({'tool': 'Bash', 'command_regex': '^ls'}, 'allow rule 0')
        assert [p.pattern for p in rule.command_patterns] == ['^ls']

    def test_legacy_value_is_appended(self):
        with pytest.warns(DeprecationWarning):
            rule = Rule.from_mapping({
                'tool': 'Read',
                'path_patterns': ['^/a/'],
                'file_path_regex': '^/b/',
                'file_path_exclude_regex': 'secret',
            }, 'allow rule 0')
        assert [p.pattern for p in rule.path_patterns] == ['^/a/', '^/b/']
        assert [p.pattern for p in rule.path_exclude_patterns] == ['secret']

    def test_empty_legacy_value_is_dropped(self):
        with pytest.warns(DeprecationWarning):
            rule = Rule.from_mapping({'tool': 'Bash', 'command_exclude_regex': ''}, 'allow rule 0')
        assert rule.exclude_patterns == ()
