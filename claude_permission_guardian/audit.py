"""
Append-only JSONL audit log of permission decisions
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import AuditConfig
from .models import Decision, MatchResult


class AuditLogger:
    """Writes one JSON object per decision, filtered by audit level"""

    def __init__(self, config: AuditConfig):
        self.level = config.audit_level
        self.log_file = Path(config.audit_file).expanduser() if config.audit_file else None

    def should_log(self, result: MatchResult) -> bool:
        if self.log_file is None or self.level == 'off':
            return False
        if self.level == 'all':
            return True
        return result.decision is not Decision.PASSTHROUGH

    def build_entry(self, tool_name: str, tool_input: Dict[str, Any], result: MatchResult,
                    session_id: str = '') -> Dict[str, Any]:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(timespec='seconds'),
            'session_id': session_id,
            'tool_name': tool_name,
            'tool_input': tool_input,
            'decision': result.decision.value,
            'reason': result.reason,
            'rule_match': result.matched_rule,
            'details': result.details,
        }
        return {key: value for key, value in entry.items() if value != '' or key in ('decision', 'reason')}

    def log_decision(self, tool_name: str, tool_input: Dict[str, Any], result: MatchResult,
                     session_id: str = '') -> Optional[Dict[str, Any]]:
        """Append the decision if the audit level asks for it; returns the entry written"""
        if not self.should_log(result):
            return None

        entry = self.build_entry(tool_name, tool_input, result, session_id)
        line = (json.dumps(entry, ensure_ascii=False) + '\n').encode('utf-8')

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        # One write on an O_APPEND descriptor keeps concurrent hooks from
        # interleaving partial lines.
        fd = os.open(self.log_file, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, line)
        finally:
            os.close(fd)
        return entry
