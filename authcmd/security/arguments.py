"""Argument policy evaluation and rewriting.

Checks run in a fixed order and the first failure denies:

1. each argument in turn against the ``forbidden`` patterns, then
   against the ``allowed`` patterns (when any are set)
2. the whole argument string against each ``must_match`` pattern

The argument string is then rewritten with the ``replace`` patterns in
declaration order. Patterns use ``re.search`` semantics, so anchor them
with ``^``/``$`` where a full match is meant.

A pattern that does not compile disables only the check it belongs to.
The failure is recorded in the caller's ``Diagnostics`` and logged; it is
never reported to the client as a denial.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from authcmd.config import Rule
from authcmd.errors import ArgumentForbidden, ArgumentNotAllowed, MustMatchFailed

logger = structlog.get_logger()


@dataclass(frozen=True)
class RegexIssue:
    """A policy pattern that could not be used."""

    check: str
    pattern: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"check": self.check, "pattern": self.pattern, "error": self.error}


@dataclass
class Diagnostics:
    """Collects regex problems found while evaluating one command."""

    issues: list[RegexIssue] = field(default_factory=list)

    def record(self, check: str, pattern: str, error: Exception) -> None:
        issue = RegexIssue(check=check, pattern=pattern, error=str(error))
        self.issues.append(issue)
        logger.warning("regex_compile_failed", **issue.to_dict())

    def to_list(self) -> list[dict[str, str]]:
        return [issue.to_dict() for issue in self.issues]

    def __bool__(self) -> bool:
        return bool(self.issues)


def _compile(pattern: str, check: str, diagnostics: Diagnostics) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error as e:
        diagnostics.record(check, pattern, e)
        return None


def _compile_all(
    patterns: list[str], check: str, diagnostics: Diagnostics
) -> list[tuple[str, re.Pattern[str]]]:
    compiled = []
    for pattern in patterns:
        regex = _compile(pattern, check, diagnostics)
        if regex is not None:
            compiled.append((pattern, regex))
    return compiled


def check_tokens(
    rule: Rule, tokens: list[str], diagnostics: Diagnostics
) -> None:
    """Check each argument against the forbidden then the allowed patterns.

    Tokens are checked in order and the first failing token denies. An
    empty ``allowed`` list permits every argument. Patterns that fail to
    compile never match; when no allowed pattern compiles the allowed
    check is skipped.

    Raises:
        ArgumentForbidden: With the offending argument and pattern.
        ArgumentNotAllowed: For an argument matching no allowed pattern.
    """
    if rule.args is None:
        return
    forbidden = _compile_all(rule.args.forbidden, "forbidden", diagnostics)
    allowed = _compile_all(rule.args.allowed, "allowed", diagnostics)
    for token in tokens:
        for pattern, regex in forbidden:
            if regex.search(token):
                raise ArgumentForbidden(rule.command, token, pattern)
        if allowed and not any(regex.search(token) for _, regex in allowed):
            raise ArgumentNotAllowed(rule.command, token)


def check_must_match(
    rule: Rule, arguments: str, diagnostics: Diagnostics
) -> None:
    """Require the whole argument string to match every must_match pattern.

    Raises:
        MustMatchFailed: For the first pattern that does not match.
    """
    for pattern in rule.must_match:
        regex = _compile(pattern, "must_match", diagnostics)
        if regex is not None and not regex.search(arguments):
            raise MustMatchFailed(rule.command, arguments, pattern)


def apply_replacements(
    rule: Rule, arguments: str, diagnostics: Diagnostics
) -> str:
    """Rewrite the argument string with the rule's replace patterns.

    Each pattern substitutes globally over the result of the previous
    one. Replacement strings use ``re.sub`` syntax (``\\1``, ``\\g<name>``).
    """
    for pattern, replacement in rule.replace.items():
        regex = _compile(pattern, "replace", diagnostics)
        if regex is None:
            continue
        try:
            arguments = regex.sub(replacement, arguments)
        except re.error as e:
            diagnostics.record("replace", pattern, e)
    return arguments


def evaluate_arguments(
    rule: Rule,
    arguments: str,
    tokens: list[str],
    diagnostics: Diagnostics | None = None,
) -> str:
    """Validate a command's arguments and return the rewritten string.

    Args:
        rule: The matched rule.
        arguments: The raw argument string, with its leading separator.
        tokens: The tokenized arguments (program excluded).
        diagnostics: Collector for unusable patterns.

    Returns:
        The argument string after replacements.

    Raises:
        ArgumentForbidden: An argument matched a forbidden pattern.
        ArgumentNotAllowed: An argument matched no allowed pattern.
        MustMatchFailed: The argument string missed a must_match pattern.
    """
    if diagnostics is None:
        diagnostics = Diagnostics()

    check_tokens(rule, tokens, diagnostics)
    check_must_match(rule, arguments, diagnostics)
    return apply_replacements(rule, arguments, diagnostics)
