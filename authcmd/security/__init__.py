"""Security layer: tokenizing, command matching, argument policy, audit logging."""

from __future__ import annotations

from authcmd.security.arguments import Diagnostics, RegexIssue, evaluate_arguments
from authcmd.security.audit import AuditLogger, open_audit_log
from authcmd.security.matcher import check_command, match_command
from authcmd.security.tokenizer import split_program, tokenize

__all__ = [
    "AuditLogger",
    "Diagnostics",
    "RegexIssue",
    "check_command",
    "evaluate_arguments",
    "match_command",
    "open_audit_log",
    "split_program",
    "tokenize",
]
