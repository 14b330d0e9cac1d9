"""
Rule matching.

Deny rules are checked first, against the whole statement. A statement with
several commands is allowed only if every command is allowed on its own; a
command no rule covers never becomes a denial, only a passthrough.
"""

from typing import Optional

from .config import Config, Rule
from .models import Decision, MatchResult, ParsedCommand, ShellStatement, Tool
from .normalizer import base_name, command_signature
from .shell_parser import ShellSyntaxError, parse_shell_command


def match_signature(pattern: str, signature: str, cmd: ParsedCommand) -> bool:
    """Check a literal command pattern against a command signature.

    Supported forms:
      "git commit"      exact signature
      "git *"           any signature starting with the word "git"
      "timeout dotnet"  multi-word prefix of the signature
      "ls"              bare command name, whatever follows it
    """
    if pattern == signature:
        return True

    if pattern.endswith(' *'):
        prefix = pattern[:-2]
        if signature == prefix or signature.startswith(prefix + ' '):
            return True
        if base_name(cmd) == prefix:
            return True

    if ' ' in pattern:
        return signature.startswith(pattern + ' ')

    return pattern == base_name(cmd)


class RuleMatcher:
    """Evaluates Bash statements and file paths against a compiled Config"""

    def __init__(self, config: Config):
        self.config = config
        self.capabilities = config.capabilities

    # ------------------------------------------------------------------
    # Bash
    # ------------------------------------------------------------------

    def match_bash_command(self, command: str) -> MatchResult:
        """Decide a raw command line"""
        try:
            statement = parse_shell_command(command)
        except ShellSyntaxError as e:
            return MatchResult.passthrough("Failed to parse command", details=str(e))
        return self.match_statement(statement)

    def match_statement(self, statement: ShellStatement) -> MatchResult:
        """Decide an already parsed statement"""
        for rule in self.config.rules_for('deny', Tool.BASH.value):
            matched = self._deny_match(rule, statement)
            if matched is not None:
                return MatchResult.deny("Command matched deny rule", rule.description, matched)

        if not statement.commands:
            return MatchResult.passthrough("No commands parsed")

        if statement.is_compound:
            for cmd in statement.commands:
                result = self.check_single_command(cmd)
                if result.decision is not Decision.ALLOW:
                    return MatchResult.passthrough(
                        "Not all commands in compound statement are allowed",
                        details=f"Command not allowed: {cmd.raw}",
                    )
            return MatchResult.allow("All commands in compound statement are allowed")

        return self.check_single_command(statement.commands[0])

    def _deny_match(self, rule: Rule, statement: ShellStatement) -> Optional[str]:
        """What made the rule hit, or None"""
        for regex in rule.command_patterns:
            if regex.search(statement.raw):
                return f"Matched pattern: {regex.pattern}"

        for cmd in statement.commands:
            sig = command_signature(cmd, self.capabilities)
            for pattern in rule.commands:
                if match_signature(pattern, sig, cmd):
                    return f"Matched: {pattern}"
        return None

    def check_single_command(self, cmd: ParsedCommand) -> MatchResult:
        """Run the allow rules for one command"""
        sig = command_signature(cmd, self.capabilities)
        details = f"Command signature: {sig}"

        for rule in self.config.rules_for('allow', Tool.BASH.value):
            matched = self._allow_match(rule, sig, cmd)
            if matched is None:
                continue

            excluded = next((r for r in rule.exclude_patterns if r.search(cmd.raw)), None)
            if excluded is not None:
                details = f"Command signature: {sig}; excluded by {excluded.pattern!r}"
                continue

            reason, detail = matched
            return MatchResult.allow(reason, rule.description, detail)

        return MatchResult.passthrough("No allow rule matched", details=details)

    @staticmethod
    def _allow_match(rule: Rule, sig: str, cmd: ParsedCommand):
        for pattern in rule.commands:
            if match_signature(pattern, sig, cmd):
                return "Command matches allowed signature", f"Matched: {pattern}"

        for regex in rule.command_patterns:
            if regex.search(cmd.raw):
                return "Command matches allowed pattern", f"Matched pattern: {regex.pattern}"
        return None

    # ------------------------------------------------------------------
    # File paths
    # ------------------------------------------------------------------

    def match_file_path(self, tool: str, path: str) -> MatchResult:
        """Decide a Read/Write/Edit style request for a single path"""
        for rule in self.config.rules_for('deny', tool):
            for regex in rule.path_patterns:
                if regex.search(path):
                    return MatchResult.deny("Path matched deny rule", rule.description,
                                            f"Matched pattern: {regex.pattern}")

        for rule in self.config.rules_for('allow', tool):
            matched = next((r for r in rule.path_patterns if r.search(path)), None)
            if matched is None:
                continue
            if any(r.search(path) for r in rule.path_exclude_patterns):
                continue
            return MatchResult.allow("Path matched allow pattern", rule.description,
                                     f"Matched pattern: {matched.pattern}")

        return MatchResult.passthrough("No rule matched for path")
