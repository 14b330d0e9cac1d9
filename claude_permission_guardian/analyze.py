"""
Turn a Claude Code session allow-list into suggested guardian rules.

Entries such as "Bash(git add:*)" or "Bash(npm run build)" are parsed, reduced
to signatures, grouped by frequency and emitted as one allow rule per base
command.
"""

import json
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import yaml

from .normalizer import DEFAULT_CAPABILITIES, CommandCapabilities, command_signature
from .shell_parser import ShellSyntaxError, parse_shell_command


BASH_PERMISSION = re.compile(r'^Bash\((.+?)(?::\*)?\)$')

# Blocks chaining, pipes and substitutions on suggested rules
INJECTION_EXCLUDES = ['&', ';', r'\|', '`', r'\$\(']


@dataclass
class CommandGroup:
    """Allow-list entries sharing one signature"""
    pattern: str
    examples: List[str] = field(default_factory=list)
    count: int = 0


def load_allowlist(path: Path) -> List[str]:
    """Read permissions.allow from a Claude settings JSON file"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    permissions = data.get('permissions') if isinstance(data, dict) else None
    allow = permissions.get('allow') if isinstance(permissions, dict) else None
    if not isinstance(allow, list):
        return []
    return [entry for entry in allow if isinstance(entry, str)]


def analyze_permissions(permissions: Iterable[str],
                        capabilities: CommandCapabilities = DEFAULT_CAPABILITIES) -> List[CommandGroup]:
    """Group Bash permissions by signature, most frequent first"""
    groups: Dict[str, CommandGroup] = OrderedDict()
    for permission in permissions:
        match = BASH_PERMISSION.match(permission)
        if not match:
            continue
        command = match.group(1)
        try:
            statement = parse_shell_command(command)
        except ShellSyntaxError:
            continue

        for cmd in statement.commands:
            sig = command_signature(cmd, capabilities)
            group = groups.setdefault(sig, CommandGroup(sig))
            group.count += 1
            if command not in group.examples:
                group.examples.append(command)

    # stable sort keeps first-seen order among equal counts
    return sorted(groups.values(), key=lambda g: g.count, reverse=True)


def suggest_rules(groups: Iterable[CommandGroup]) -> List[Dict[str, Any]]:
    """One Bash allow rule per base command"""
    by_command: Dict[str, List[str]] = OrderedDict()
    for group in groups:
        base = group.pattern.split()[0]
        by_command.setdefault(base, []).append(group.pattern)

    return [
        {
            'tool': 'Bash',
            'description': f"{base} commands",
            'commands': patterns,
            'exclude_patterns': list(INJECTION_EXCLUDES),
        }
        for base, patterns in by_command.items()
    ]


# ============================================================================
# Output Formats
# ============================================================================

HEADER = ("# Suggested configuration based on session allowlist\n"
          "# Review and customize before using\n")


def format_yaml(groups: List[CommandGroup]) -> str:
    return HEADER + yaml.safe_dump({'allow': suggest_rules(groups)}, sort_keys=False)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def format_toml(groups: List[CommandGroup]) -> str:
    lines = [HEADER]
    for rule in suggest_rules(groups):
        lines.append(f"# {rule['description']} ({len(rule['commands'])} patterns)")
        lines.append("[[allow]]")
        lines.append(f"tool = {_toml_string(rule['tool'])}")
        lines.append(f"description = {_toml_string(rule['description'])}")
        lines.append(f"commands = [{', '.join(_toml_string(c) for c in rule['commands'])}]")
        lines.append(f"exclude_patterns = [{', '.join(_toml_string(p) for p in rule['exclude_patterns'])}]")
        lines.append("")
    return '\n'.join(lines)


def format_text(groups: List[CommandGroup]) -> str:
    lines = ["Suggested command patterns:", "===========================", ""]
    for group in groups:
        lines.append(f"Pattern: {group.pattern}")
        lines.append(f"  Count: {group.count}")
        shown = group.examples[:3]
        more = len(group.examples) - len(shown)
        suffix = f" ... ({more} more)" if more > 0 else ''
        lines.append(f"  Examples: {', '.join(shown)}{suffix}")
        lines.append("")
    return '\n'.join(lines)


FORMATTERS: Mapping[str, Any] = {
    'yaml': format_yaml,
    'toml': format_toml,
    'text': format_text,
}
