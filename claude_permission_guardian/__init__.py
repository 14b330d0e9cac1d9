"""
Claude Code Permission Guardian - signature-based permission hook for Claude Code
Decides allow / deny / passthrough for Bash commands and file paths
"""

from .config import Config, ConfigError, Rule, build_config, load_config
from .hook import PermissionGuardian
from .matcher import RuleMatcher, match_signature
from .models import Decision, MatchResult, ParsedCommand, ShellStatement, Tool
from .normalizer import (
    DEFAULT_CAPABILITIES,
    CommandCapabilities,
    base_name,
    command_signature,
    normalize,
    subcommand,
    unwrap,
)
from .shell_parser import ShellSyntaxError, parse_shell_command

__version__ = '1.0.0'

__all__ = [
    'CommandCapabilities', 'Config', 'ConfigError', 'DEFAULT_CAPABILITIES',
    'Decision', 'MatchResult', 'ParsedCommand', 'PermissionGuardian', 'Rule',
    'RuleMatcher', 'ShellStatement', 'ShellSyntaxError', 'Tool', 'base_name',
    'build_config', 'command_signature', 'load_config', 'match_signature',
    'normalize', 'parse_shell_command', 'subcommand', 'unwrap',
]
