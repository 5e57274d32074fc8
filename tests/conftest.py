"""Shared fixtures for authcmd tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog

from authcmd.config import ArgPolicy, Policy, Rule


@pytest.fixture(autouse=True)
def _reset_structlog():
    """The CLI configures structlog globally; undo it after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def base_policy() -> Policy:
    """Policy mirroring a typical deployment: /bin/echo, ls and echo.

    /bin/echo comes first so a bare "echo" rule resolving to /bin/echo
    through PATH can never shadow it.
    """
    return Policy(
        show_denied=True,
        allowed_commands=[
            Rule(
                command="/bin/echo",
                args=ArgPolicy(forbidden=[r"\$"]),
                replace={"pizza$": "pasta"},
            ),
            Rule(command="ls", args=ArgPolicy(allowed=[r"^-[lah]+$", r"^[\w./-]+$"])),
            Rule(command="echo"),
        ],
    )


@pytest.fixture
def write_policy(tmp_path: Path):
    """Write YAML text to a policy file and return its path."""

    def _write(text: str, name: str = "authcmd.yml") -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
