"""
Claude Code PreToolUse hook: reads one request, writes one decision
"""

import json
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TextIO

from .audit import AuditLogger
from .config import Config
from .matcher import RuleMatcher
from .models import FILE_TOOLS, Decision, MatchResult, Tool


# Passthrough defers to Claude Code's own permission prompt
HOST_DECISIONS = {
    Decision.ALLOW: 'allow',
    Decision.DENY: 'deny',
    Decision.PASSTHROUGH: 'ask',
}

PATH_KEYS = ('file_path', 'notebook_path', 'path')


class HookInputError(ValueError):
    """The hook payload could not be read"""


# ============================================================================
# Protocol
# ============================================================================

@dataclass(frozen=True)
class HookInput:
    """The fields of the hook payload this guardian uses"""
    tool_name: str
    tool_input: Dict[str, Any] = field(default_factory=dict)
    session_id: str = ''
    cwd: str = ''
    hook_event_name: str = 'PreToolUse'

    @classmethod
    def from_json(cls, text: str) -> 'HookInput':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise HookInputError(f"Failed to parse input JSON: {e}") from e
        if not isinstance(data, dict):
            raise HookInputError("Hook input must be a JSON object")

        tool_input = data.get('tool_input') or {}
        if not isinstance(tool_input, dict):
            raise HookInputError("'tool_input' must be a JSON object")
        return cls(
            tool_name=str(data.get('tool_name', '')),
            tool_input=tool_input,
            session_id=str(data.get('session_id', '')),
            cwd=str(data.get('cwd', '')),
            hook_event_name=str(data.get('hook_event_name') or 'PreToolUse'),
        )

    @property
    def command(self) -> str:
        command = self.tool_input.get('command', '')
        return command if isinstance(command, str) else ''

    @property
    def file_path(self) -> str:
        for key in PATH_KEYS:
            value = self.tool_input.get(key)
            if isinstance(value, str) and value:
                return value
        return ''


def format_reason(result: MatchResult) -> str:
    if result.matched_rule:
        return f"{result.matched_rule}: {result.reason}"
    return result.reason


def format_response(result: MatchResult, event_name: str = 'PreToolUse') -> Dict[str, Any]:
    """Hook output in Claude Code's permission vocabulary"""
    output = {
        'hookEventName': event_name,
        'permissionDecision': HOST_DECISIONS[result.decision],
    }
    if result.decision is not Decision.PASSTHROUGH:
        output['permissionDecisionReason'] = format_reason(result)
    return {'hookSpecificOutput': output}


# ============================================================================
# Main Guardian Class
# ============================================================================

class PermissionGuardian:
    """Routes a tool request to the matching engine and audits the outcome"""

    def __init__(self, config: Config):
        self.config = config
        self.matcher = RuleMatcher(config)
        self.audit = AuditLogger(config.audit)

    def check_permission(self, tool_name: str, tool_input: Dict[str, Any]) -> MatchResult:
        """Decide a single tool request"""
        request = HookInput(tool_name=tool_name, tool_input=tool_input)

        if tool_name == Tool.BASH.value:
            if not request.command:
                return MatchResult.passthrough("Empty command")
            return self.matcher.match_bash_command(request.command)

        if tool_name in FILE_TOOLS:
            if not request.file_path:
                return MatchResult.passthrough("No file path in request")
            return self.matcher.match_file_path(tool_name, request.file_path)

        return MatchResult.passthrough(f"Tool {tool_name or '?'} is not handled")

    def handle(self, request: HookInput, stderr: Optional[TextIO] = None) -> Dict[str, Any]:
        """Decide, audit and format the response for one hook request"""
        stderr = stderr or sys.stderr
        if self.config.debug_mode:
            print(f"DEBUG: Tool: {request.tool_name}", file=stderr)
            print(f"DEBUG: Input: {json.dumps(request.tool_input)}", file=stderr)

        result = self.check_permission(request.tool_name, request.tool_input)

        if self.config.debug_mode:
            print(f"DEBUG: Decision: {result.decision.value} ({result.reason}) {result.details}", file=stderr)

        try:
            self.audit.log_decision(request.tool_name, request.tool_input, result, request.session_id)
        except OSError as e:
            print(f"Audit log write failed: {e}", file=stderr)

        return format_response(result, request.hook_event_name)


def run_hook(config: Config, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None,
             stderr: Optional[TextIO] = None) -> int:
    """Read one request from stdin, write one decision to stdout; returns the exit code"""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    try:
        request = HookInput.from_json(stdin.read())
    except HookInputError as e:
        print(f"Error reading input: {e}", file=stderr)
        return 1

    response = PermissionGuardian(config).handle(request, stderr)
    print(json.dumps(response), file=stdout)
    return 0
