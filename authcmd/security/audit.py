"""Structured JSON audit logging using structlog.

Every terminal decision is logged (denials, launches and child exit
codes) together with the acting user, the selected tags and any policy
patterns that failed to compile. One JSON object per line.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO, Any, Sequence

import structlog

from authcmd.config import Policy
from authcmd.security.arguments import RegexIssue

logger = structlog.get_logger()

DEFAULT_LOG_NAME = "authcmd.log"
_LOG_FILE_MODE = 0o640


def _open_append(path: Path) -> IO[str]:
    """Open a log file for appending, creating it with mode 0640."""
    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, _LOG_FILE_MODE)
    return os.fdopen(fd, "a", buffering=1)


class AuditLogger:
    """Structured audit logger for gatekeeper decisions."""

    def __init__(self, log_path: str | Path) -> None:
        """Initialize the audit logger.

        Args:
            log_path: Path to the JSONL audit log file.

        Raises:
            OSError: If the file cannot be opened.
        """
        self._log_path = Path(log_path)
        self._file = _open_append(self._log_path)

        self._logger = structlog.wrap_logger(
            structlog.PrintLogger(file=self._file),
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.JSONRenderer(),
            ],
            # Independent of the level configured for diagnostics
            wrapper_class=structlog.make_filtering_bound_logger(0),
            context_class=dict,
        )

    @property
    def path(self) -> Path:
        return self._log_path

    def log_denied(
        self,
        user: str,
        tags: Sequence[str],
        reason: str,
        regex_issues: Sequence[RegexIssue] = (),
    ) -> None:
        """Log a refused command."""
        self._logger.warning(
            "denied",
            user=user,
            tags=list(tags),
            reason=reason,
            regex_issues=[issue.to_dict() for issue in regex_issues],
        )

    def log_running(
        self,
        user: str,
        tags: Sequence[str],
        command: str,
        regex_issues: Sequence[RegexIssue] = (),
    ) -> None:
        """Log a command about to be launched."""
        self._logger.info(
            "running",
            user=user,
            tags=list(tags),
            command=command,
            regex_issues=[issue.to_dict() for issue in regex_issues],
        )

    def log_finished(
        self,
        user: str,
        tags: Sequence[str],
        command: str,
        exit_code: int,
    ) -> None:
        """Log the exit status of a launched command."""
        log = self._logger.info if exit_code == 0 else self._logger.warning
        log("finished", user=user, tags=list(tags), command=command, exit_code=exit_code)

    def log_error(
        self,
        user: str,
        tags: Sequence[str],
        command: str,
        error: str,
    ) -> None:
        """Log a command that could not be run."""
        self._logger.error("error", user=user, tags=list(tags), command=command, error=error)

    def close(self) -> None:
        """Close the audit log file."""
        self._file.close()

    def __enter__(self) -> AuditLogger:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def open_audit_log(policy: Policy, home: Path | None = None) -> AuditLogger | None:
    """Open the audit log selected by the policy.

    Logging is off unless ``enable_logging`` is true. ``log_file`` is
    used when set; if it is empty or cannot be opened the log goes to
    ~/authcmd.log. If that fails too, logging stays off.

    Args:
        policy: The effective policy.
        home: Home directory for the fallback file, defaults to ~.

    Returns:
        An AuditLogger, or None when logging is disabled.
    """
    if not policy.logging_enabled:
        return None

    candidates: list[Path] = []
    if policy.log_file:
        candidates.append(Path(policy.log_file).expanduser())
    candidates.append((home or Path(os.path.expanduser("~"))) / DEFAULT_LOG_NAME)

    for candidate in candidates:
        try:
            return AuditLogger(candidate)
        except OSError as e:
            logger.warning("audit_log_unavailable", path=str(candidate), error=str(e))
    return None
