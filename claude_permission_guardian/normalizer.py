"""
Command normalization and signatures.

A signature is the matching key for a command: its base name, the subcommand
for multi-level CLIs, and for wrapper commands the signature of the wrapped
command. Flag values never appear in it, so `git -c a=b commit -m x` and
`git commit --amend` both become `git commit`.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, FrozenSet, Iterable, Mapping, Optional

from .models import ParsedCommand


# ============================================================================
# Capability Table
# ============================================================================

DEFAULT_SUBCOMMAND_TOOLS = frozenset({
    'git', 'dotnet', 'glab', 'gh', 'npm', 'pnpm', 'yarn', 'cargo',
    'kubectl', 'terraform', 'docker', 'az', 'dotnet-ef',
})

DEFAULT_WRAPPERS = frozenset({'timeout', 'sudo', 'env', 'nice', 'nohup', 'time'})

DEFAULT_VALUE_FLAGS = {
    'git': ('-C', '--git-dir', '--work-tree', '-c'),
    'dotnet': ('--project', '-p'),
    'glab': ('-R', '--repo'),
    'gh': ('-R', '--repo'),
    'timeout': ('-k', '-s', '--signal', '--kill-after'),
    'sudo': ('-u', '-g', '-h', '-p', '-U', '-C', '-D', '-r', '-t', '-T'),
    'env': ('-u', '-C', '-S', '--unset', '--chdir', '--split-string'),
    'nice': ('-n', '--adjustment'),
    'time': ('-f', '-o', '--format', '--output'),
}


def _freeze_flags(value_flags: Mapping[str, Iterable[str]]) -> Mapping[str, FrozenSet[str]]:
    return MappingProxyType({cmd: frozenset(flags) for cmd, flags in value_flags.items()})


@dataclass(frozen=True)
class CommandCapabilities:
    """Which commands carry subcommands, which wrap other commands, and
    which of their flags consume the following token"""
    subcommand_tools: FrozenSet[str] = DEFAULT_SUBCOMMAND_TOOLS
    wrappers: FrozenSet[str] = DEFAULT_WRAPPERS
    value_flags: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: _freeze_flags(DEFAULT_VALUE_FLAGS))

    def has_subcommands(self, command: str) -> bool:
        return command in self.subcommand_tools

    def is_wrapper(self, command: str) -> bool:
        return command in self.wrappers

    def takes_value(self, command: str, flag: str) -> bool:
        return flag in self.value_flags.get(command, ())

    def extended(self, subcommand_tools: Iterable[str] = (), wrappers: Iterable[str] = (),
                 value_flags: Optional[Mapping[str, Iterable[str]]] = None) -> 'CommandCapabilities':
        """Return a new table with the given entries added"""
        merged = {cmd: set(flags) for cmd, flags in self.value_flags.items()}
        for cmd, flags in (value_flags or {}).items():
            merged.setdefault(cmd, set()).update(flags)
        return CommandCapabilities(
            subcommand_tools=self.subcommand_tools | frozenset(subcommand_tools),
            wrappers=self.wrappers | frozenset(wrappers),
            value_flags=_freeze_flags(merged),
        )


DEFAULT_CAPABILITIES = CommandCapabilities()


# ============================================================================
# Normalizer
# ============================================================================

_DURATION = re.compile(r'^\d+(\.\d+)?[smhd]?$')
_ASSIGNMENT = re.compile(r'^[^=\s][^=]*=')

# Non-flag operands a wrapper accepts before the wrapped command
_WRAPPER_OPERANDS: Mapping[str, Callable[[str], bool]] = MappingProxyType({
    'timeout': lambda arg: bool(_DURATION.match(arg)),
    'env': lambda arg: bool(_ASSIGNMENT.match(arg)),
})

PATH_PREFIXES = ('/', './', '../', '~')


@dataclass(frozen=True)
class NormalizedCommand:
    """Base name plus subcommand, or the unwrapped inner command for wrappers"""
    base: str
    subcommand: str = ''
    inner: Optional['NormalizedCommand'] = None


def base_name(cmd: ParsedCommand) -> str:
    """Strip any path prefix: /usr/bin/git -> git"""
    return cmd.name.rsplit('/', 1)[-1]


def _skip_flags(base: str, args, capabilities: CommandCapabilities,
                operand: Optional[Callable[[str], bool]] = None) -> int:
    """Index of the first token in args that is neither a flag, a flag value,
    nor an accepted operand; len(args) if there is none"""
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == '--' and operand is not None:
            return i + 1
        if arg.startswith('-'):
            if capabilities.takes_value(base, arg):
                i += 1
            i += 1
            continue
        if operand is not None and operand(arg):
            i += 1
            continue
        return i
    return i


def subcommand(cmd: ParsedCommand, capabilities: CommandCapabilities = DEFAULT_CAPABILITIES) -> str:
    """First non-flag token after the command name for multi-level CLIs"""
    base = base_name(cmd)
    if not capabilities.has_subcommands(base):
        return ''
    args = cmd.args[1:]
    index = _skip_flags(base, args, capabilities)
    return args[index] if index < len(args) else ''


def unwrap(cmd: ParsedCommand,
           capabilities: CommandCapabilities = DEFAULT_CAPABILITIES) -> Optional[ParsedCommand]:
    """The command a wrapper launches, or None if cmd is not a wrapper or
    names no inner command"""
    base = base_name(cmd)
    if not capabilities.is_wrapper(base):
        return None

    args = cmd.args[1:]
    operand = _WRAPPER_OPERANDS.get(base, lambda arg: False)
    index = _skip_flags(base, args, capabilities, operand)
    if index >= len(args):
        return None
    return ParsedCommand.from_args(args[index:])


def normalize(cmd: ParsedCommand,
              capabilities: CommandCapabilities = DEFAULT_CAPABILITIES) -> NormalizedCommand:
    base = base_name(cmd)
    inner = unwrap(cmd, capabilities)
    if inner is not None:
        return NormalizedCommand(base, inner=normalize(inner, capabilities))
    return NormalizedCommand(base, subcommand(cmd, capabilities))


# ============================================================================
# Signatures
# ============================================================================

def looks_like_path(token: str) -> bool:
    return token.startswith(PATH_PREFIXES)


def signature_of(normalized: NormalizedCommand) -> str:
    if normalized.inner is not None:
        return f"{normalized.base} {signature_of(normalized.inner)}"
    sub = normalized.subcommand
    if sub and not sub.startswith('-') and not looks_like_path(sub):
        return f"{normalized.base} {sub}"
    return normalized.base


def command_signature(cmd: ParsedCommand,
                      capabilities: CommandCapabilities = DEFAULT_CAPABILITIES) -> str:
    """Canonical matching key, e.g. "timeout dotnet run" for
    "timeout 30 dotnet run --project x" """
    return signature_of(normalize(cmd, capabilities))
