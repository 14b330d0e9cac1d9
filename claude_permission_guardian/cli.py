"""
Command line entry point: run | validate | analyze | parse
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .analyze import FORMATTERS, analyze_permissions, load_allowlist
from .config import DEFAULT_CONFIG_PATH, ConfigError, load_config
from .hook import run_hook
from .normalizer import DEFAULT_CAPABILITIES, command_signature
from .shell_parser import ShellSyntaxError, parse_shell_command


def _load_or_exit(path: Path, prefix: str = "Error loading config"):
    try:
        return load_config(path)
    except ConfigError as e:
        print(f"{prefix}: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_run(args: argparse.Namespace) -> int:
    config = _load_or_exit(args.config)
    return run_hook(config)


def cmd_validate(args: argparse.Namespace) -> int:
    config = _load_or_exit(args.config, "❌ Configuration invalid")
    print("✅ Configuration valid")
    print(f"   Allow rules: {len(config.allow)}")
    print(f"   Deny rules: {len(config.deny)}")
    print(f"   Audit level: {config.audit.audit_level}")
    if config.audit.audit_file:
        print(f"   Audit file: {config.audit.audit_file}")
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    try:
        permissions = load_allowlist(args.allowlist)
    except OSError as e:
        print(f"Error reading allowlist: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error parsing allowlist: {e}", file=sys.stderr)
        return 1

    groups = analyze_permissions(permissions)
    print(FORMATTERS[args.format](groups))
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    capabilities = _load_or_exit(args.config).capabilities if args.config else DEFAULT_CAPABILITIES
    command = ' '.join(args.command)
    try:
        statement = parse_shell_command(command)
    except ShellSyntaxError as e:
        print(f"Error parsing command: {e}", file=sys.stderr)
        return 1

    print(f"Command: {command}")
    print(f"Parsed {len(statement.commands)} command(s):")
    for i, cmd in enumerate(statement.commands, 1):
        print(f"\n  [{i}] {cmd.raw}")
        print(f"      Name: {cmd.name}")
        print(f"      Args: {list(cmd.args)}")
        print(f"      Signature: {command_signature(cmd, capabilities)}")
        if cmd.operator:
            print(f"      Next operator: {cmd.operator}")

    if statement.has_pipe:
        print("\n  ⚠️  Contains pipe")
    if statement.has_subshell:
        print("\n  ⚠️  Contains subshell")
    if statement.has_background:
        print("\n  ⚠️  Contains background job")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='claude-permission-guardian',
        description='Signature-based permission hook for Claude Code',
    )
    sub = parser.add_subparsers(dest='command_name', required=True)

    config_help = f'YAML or TOML configuration file (default: {DEFAULT_CONFIG_PATH})'

    run = sub.add_parser('run', help='Run as a Claude Code hook (reads JSON from stdin)')
    run.add_argument('--config', type=Path, default=DEFAULT_CONFIG_PATH, help=config_help)
    run.set_defaults(func=cmd_run)

    validate = sub.add_parser('validate', help='Validate a configuration file')
    validate.add_argument('--config', type=Path, default=DEFAULT_CONFIG_PATH, help=config_help)
    validate.set_defaults(func=cmd_validate)

    analyze = sub.add_parser('analyze', help='Suggest rules from a session allowlist')
    analyze.add_argument('--allowlist', type=Path, required=True,
                         help='Claude settings JSON with permissions.allow')
    analyze.add_argument('--format', choices=sorted(FORMATTERS), default='yaml')
    analyze.set_defaults(func=cmd_analyze)

    parse = sub.add_parser('parse', help='Parse a shell command and show its structure')
    parse.add_argument('--config', type=Path, help='Use command capabilities from this configuration')
    parse.add_argument('command', nargs='+', help='Command text')
    parse.set_defaults(func=cmd_parse)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
