"""
Configuration loading, validation and rule compilation.

The rule set is compiled once, when the file is loaded. Any problem (bad
YAML/TOML, unknown tool, malformed field, invalid regex) raises ConfigError
and nothing is returned: a rule set is never partially loaded.
"""

import re
import tomllib
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple

import yaml

from .models import TOOL_NAMES
from .normalizer import DEFAULT_CAPABILITIES, CommandCapabilities


AUDIT_LEVELS = ('off', 'matched', 'all')

DEFAULT_CONFIG_PATH = Path('~/.config/claude-permission-guardian.yaml')

# Deprecated single-regex fields and the list field each one feeds
LEGACY_ALIASES = {
    'command_regex': 'command_patterns',
    'command_exclude_regex': 'exclude_patterns',
    'file_path_regex': 'path_patterns',
    'file_path_exclude_regex': 'path_exclude_patterns',
}

_LIST_FIELDS = ('commands', 'command_patterns', 'exclude_patterns',
                'path_patterns', 'path_exclude_patterns')
_REGEX_FIELDS = _LIST_FIELDS[1:]


class ConfigError(Exception):
    """Invalid configuration; fatal before any decision is made"""


# ============================================================================
# Configuration Model
# ============================================================================

@dataclass(frozen=True)
class Rule:
    """One allow or deny rule with its patterns compiled"""
    tool: str
    commands: Tuple[str, ...] = ()
    command_patterns: Tuple[Pattern, ...] = ()
    exclude_patterns: Tuple[Pattern, ...] = ()
    path_patterns: Tuple[Pattern, ...] = ()
    path_exclude_patterns: Tuple[Pattern, ...] = ()
    description: str = ''

    @classmethod
    def from_mapping(cls, data: Any, label: str) -> 'Rule':
        """Validate and compile a rule; label names it in error messages"""
        if not isinstance(data, Mapping):
            raise ConfigError(f"{label}: expected a table, got {type(data).__name__}")

        data = _translate_legacy(dict(data), label)
        unknown = set(data) - set(_LIST_FIELDS) - {'tool', 'description'}
        if unknown:
            raise ConfigError(f"{label}: unknown field(s) {', '.join(sorted(unknown))}")

        tool = data.get('tool')
        if not tool:
            raise ConfigError(f"{label}: missing 'tool'")
        if tool not in TOOL_NAMES:
            raise ConfigError(f"{label}: unknown tool {tool!r}")

        description = data.get('description', '')
        if not isinstance(description, str):
            raise ConfigError(f"{label}: 'description' must be a string")

        lists = {name: _string_list(data.get(name), label, name) for name in _LIST_FIELDS}
        compiled = {name: _compile_all(lists[name], label, name) for name in _REGEX_FIELDS}
        return cls(tool=tool, commands=tuple(lists['commands']),
                   description=description, **compiled)


@dataclass(frozen=True)
class AuditConfig:
    audit_file: str = ''
    audit_level: str = 'matched'


@dataclass(frozen=True)
class Config:
    """Immutable, pre-compiled rule set shared by every decision"""
    audit: AuditConfig = field(default_factory=AuditConfig)
    allow: Tuple[Rule, ...] = ()
    deny: Tuple[Rule, ...] = ()
    capabilities: CommandCapabilities = DEFAULT_CAPABILITIES
    debug_mode: bool = False

    def rules_for(self, section: str, tool: str) -> List[Rule]:
        return [rule for rule in getattr(self, section) if rule.tool == tool]


# ============================================================================
# Field Helpers
# ============================================================================

def _translate_legacy(data: Dict[str, Any], label: str) -> Dict[str, Any]:
    for legacy, target in LEGACY_ALIASES.items():
        if legacy not in data:
            continue
        value = data.pop(legacy)
        warnings.warn(f"{label}: '{legacy}' is deprecated, use '{target}'",
                      DeprecationWarning, stacklevel=4)
        if value:
            data[target] = list(_string_list(data.get(target), label, target)) + [value]
    return data


def _string_list(value: Any, label: str, name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{label}: '{name}' must be a list of strings")
    return value


def _compile_all(patterns: List[str], label: str, name: str) -> Tuple[Pattern, ...]:
    compiled = []
    for i, pattern in enumerate(patterns):
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ConfigError(f"{label}: invalid {name}[{i}] {pattern!r}: {e}") from e
    return tuple(compiled)


# ============================================================================
# Loading
# ============================================================================

DEFAULTS: Dict[str, Any] = {
    'audit': {
        'audit_file': '',
        'audit_level': 'matched',
    },
    'system_config': {
        'debug_mode': False,
    },
    'multi_level_commands': [],
    'wrapper_commands': [],
    'value_flags': {},
    'allow': [],
    'deny': [],
}


def _deep_merge(base: Dict, override: Mapping) -> Dict:
    """Deep merge two dictionaries"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _build_capabilities(merged: Mapping[str, Any]) -> CommandCapabilities:
    value_flags = merged['value_flags']
    if not isinstance(value_flags, Mapping):
        raise ConfigError("'value_flags' must map command names to lists of flags")
    return DEFAULT_CAPABILITIES.extended(
        subcommand_tools=_string_list(merged['multi_level_commands'], 'config', 'multi_level_commands'),
        wrappers=_string_list(merged['wrapper_commands'], 'config', 'wrapper_commands'),
        value_flags={cmd: _string_list(flags, 'value_flags', cmd) for cmd, flags in value_flags.items()},
    )


def _build_audit(section: Any) -> AuditConfig:
    if not isinstance(section, Mapping):
        raise ConfigError("'audit' must be a table")
    level = section.get('audit_level') or 'matched'
    if level not in AUDIT_LEVELS:
        raise ConfigError(f"audit: invalid audit_level {level!r} (expected one of {', '.join(AUDIT_LEVELS)})")
    audit_file = section.get('audit_file') or ''
    if not isinstance(audit_file, str):
        raise ConfigError("audit: 'audit_file' must be a string")
    return AuditConfig(audit_file=audit_file, audit_level=level)


def _build_rules(rules: Any, section: str) -> Tuple[Rule, ...]:
    if not isinstance(rules, list):
        raise ConfigError(f"'{section}' must be a list of rules")
    return tuple(Rule.from_mapping(data, f"{section} rule {i}") for i, data in enumerate(rules))


def build_config(data: Optional[Mapping[str, Any]] = None) -> Config:
    """Build a Config from already-decoded configuration data"""
    merged = _deep_merge(DEFAULTS, data or {})
    system_config = merged['system_config']
    return Config(
        audit=_build_audit(merged['audit']),
        allow=_build_rules(merged['allow'], 'allow'),
        deny=_build_rules(merged['deny'], 'deny'),
        capabilities=_build_capabilities(merged),
        debug_mode=bool(system_config.get('debug_mode', False)) if isinstance(system_config, Mapping) else False,
    )


def _read_config_data(path: Path) -> Mapping[str, Any]:
    try:
        if path.suffix == '.toml':
            with open(path, 'rb') as f:
                data = tomllib.load(f)
        else:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigError(f"Config {path} must contain a mapping at the top level")
    return data


def load_config(path: Optional[Path] = None) -> Config:
    """Load, validate and compile a YAML or TOML configuration file"""
    path = Path(path or DEFAULT_CONFIG_PATH).expanduser()
    return build_config(_read_config_data(path))
