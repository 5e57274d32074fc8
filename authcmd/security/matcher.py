"""Allowed command lookup.

Finds the rule that governs the invoked program. Rules are tried in the
order they are declared and the first match wins.
"""

from __future__ import annotations

import os
import shutil

import structlog

from authcmd.config import Policy, Rule
from authcmd.errors import CommandNotAllowed

logger = structlog.get_logger()


def command_matches(allowed: str, program: str, search_path: str | None = None) -> bool:
    """Check whether a rule's command identifies the invoked program.

    - An absolute rule command matches only the identical path.
    - A bare rule command matches an absolute program when the name
      resolves to exactly that path through the search path.
    - Otherwise both names must be equal.

    Args:
        allowed: The ``command`` of a rule.
        program: The first token of the client's command line.
        search_path: PATH-style directory list, defaults to $PATH.

    Returns:
        True if the rule applies to the program.
    """
    if allowed.startswith(os.sep):
        return allowed == program

    if program.startswith(os.sep):
        resolved = shutil.which(allowed, path=search_path)
        if resolved is not None:
            return resolved == program

    return allowed == program


def match_command(policy: Policy, program: str, search_path: str | None = None) -> Rule | None:
    """Return the first rule matching the program, or None."""
    for rule in policy.allowed_commands:
        if command_matches(rule.command, program, search_path):
            return rule
    return None


def check_command(policy: Policy, program: str, search_path: str | None = None) -> Rule:
    """Look up the rule for a program, raising on denial.

    Raises:
        CommandNotAllowed: If no rule matches.
    """
    rule = match_command(policy, program, search_path)
    if rule is None:
        logger.info("command_not_allowed", program=program)
        raise CommandNotAllowed(program)
    return rule
