"""
Data model shared by the parser, the normalizer and the rule matcher
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


# ============================================================================
# Tools
# ============================================================================

class Tool(str, Enum):
    """Claude Code tool names a rule can target"""
    BASH = 'Bash'
    READ = 'Read'
    WRITE = 'Write'
    EDIT = 'Edit'
    MULTI_EDIT = 'MultiEdit'
    NOTEBOOK_EDIT = 'NotebookEdit'
    GLOB = 'Glob'
    GREP = 'Grep'
    LS = 'LS'
    WEB_FETCH = 'WebFetch'
    WEB_SEARCH = 'WebSearch'
    TASK = 'Task'
    SKILL = 'Skill'


TOOL_NAMES = frozenset(tool.value for tool in Tool)

FILE_TOOLS = frozenset({
    Tool.READ.value, Tool.WRITE.value, Tool.EDIT.value,
    Tool.MULTI_EDIT.value, Tool.NOTEBOOK_EDIT.value,
})


# ============================================================================
# Parsed Shell Statements
# ============================================================================

@dataclass(frozen=True)
class ParsedCommand:
    """A single simple command found in a shell statement"""
    name: str
    args: Tuple[str, ...]
    raw: str
    operator: str = ''

    @classmethod
    def from_args(cls, args, operator: str = '') -> 'ParsedCommand':
        args = tuple(args)
        return cls(name=args[0] if args else '', args=args,
                   raw=' '.join(args), operator=operator)


@dataclass(frozen=True)
class ShellStatement:
    """A parsed command line: its commands in source order plus hazard flags"""
    raw: str
    commands: Tuple[ParsedCommand, ...] = field(default_factory=tuple)
    has_pipe: bool = False
    has_background: bool = False
    has_subshell: bool = False

    @property
    def is_compound(self) -> bool:
        return len(self.commands) > 1


# ============================================================================
# Decisions
# ============================================================================

class Decision(str, Enum):
    """Outcome of matching a request against the rule set"""
    ALLOW = 'allow'
    DENY = 'deny'
    PASSTHROUGH = 'passthrough'


@dataclass(frozen=True)
class MatchResult:
    """Decision plus the justification surfaced to the host and the audit log"""
    decision: Decision
    reason: str
    matched_rule: str = ''
    details: str = ''

    @classmethod
    def allow(cls, reason: str, matched_rule: str = '', details: str = ''):
        return cls(Decision.ALLOW, reason, matched_rule, details)

    @classmethod
    def deny(cls, reason: str, matched_rule: str = '', details: str = ''):
        return cls(Decision.DENY, reason, matched_rule, details)

    @classmethod
    def passthrough(cls, reason: str, details: str = ''):
        return cls(Decision.PASSTHROUGH, reason, '', details)
