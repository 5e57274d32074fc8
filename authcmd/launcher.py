"""Execution planning and child process launch.

Turns an authorized rule and its rewritten argument string into a
concrete process invocation, then runs it. Commands are executed with
asyncio.create_subprocess_exec, either directly from the re-tokenized
argv or through the shell named by ``use_shell``. Environment variables
from the policy are applied to the child's environment only.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import re
import shlex
import shutil
import sys
from dataclasses import dataclass, field
from typing import IO, Mapping

import structlog

from authcmd.config import USE_LOGIN_SHELL, Policy, Rule
from authcmd.errors import ArgReparseError, ChildExecutionError, ShellNotFound, TokenizeError
from authcmd.security.tokenizer import tokenize

logger = structlog.get_logger()

# $NAME or ${NAME}
_ENV_REF_RE = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z_][A-Za-z0-9_]*))")

_READ_CHUNK = 4096


@dataclass(frozen=True)
class ExecutionPlan:
    """A fully resolved process invocation."""

    argv: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)
    shell: str | None = None

    @property
    def display(self) -> str:
        """Render the invocation as a shell-quoted command line."""
        return shlex.join(self.argv)


@dataclass(frozen=True)
class ExecutionResult:
    """Captured outcome of a child process."""

    output: str = ""
    exit_code: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def build_environment(
    policy: Policy,
    rule: Rule,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the child environment: base, then global, then rule variables."""
    env = dict(os.environ if base_env is None else base_env)
    env.update(policy.set_env_vars)
    env.update(rule.set_env_vars)
    return env


def expand_env_vars(text: str, env: Mapping[str, str]) -> str:
    """Replace $NAME and ${NAME} references from env.

    Unknown variables expand to the empty string. A ``$`` not followed
    by a variable name is kept.
    """

    def _lookup(match: re.Match[str]) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        return env.get(name, "")

    return _ENV_REF_RE.sub(_lookup, text)


def resolve_shell(use_shell: str, env: Mapping[str, str]) -> str:
    """Resolve the configured shell to an executable path.

    The ``default`` value selects $SHELL from env.

    Raises:
        ShellNotFound: If the shell cannot be found.
    """
    shell = use_shell
    if shell == USE_LOGIN_SHELL:
        shell = env.get("SHELL", shell)
    resolved = shutil.which(shell, path=env.get("PATH"))
    if resolved is None:
        raise ShellNotFound(shell)
    return resolved


def plan_execution(
    rule: Rule,
    policy: Policy,
    arguments: str,
    base_env: Mapping[str, str] | None = None,
) -> ExecutionPlan:
    """Assemble the process invocation for an authorized command.

    Args:
        rule: The matched rule; its command becomes argv[0].
        policy: The effective policy.
        arguments: The rewritten argument string.
        base_env: Environment to start from, defaults to os.environ.

    Returns:
        The execution plan.

    Raises:
        ShellNotFound: If use_shell is set and cannot be resolved.
        ArgReparseError: If the argument string no longer tokenizes.
    """
    env = build_environment(policy, rule, base_env)
    if policy.expands_env_vars:
        arguments = expand_env_vars(arguments, env)

    command_line = f"{rule.command} {arguments}"

    if policy.use_shell:
        shell = resolve_shell(policy.use_shell, env)
        return ExecutionPlan(argv=(shell, "-c", command_line), env=env, shell=shell)

    try:
        tokens = tokenize(command_line)
    except TokenizeError as e:
        raise ArgReparseError(arguments, e.reason) from e
    return ExecutionPlan(argv=(rule.command, *tokens[1:]), env=env)


async def run_plan(plan: ExecutionPlan, stream: IO[str] | None = None) -> ExecutionResult:
    """Run a planned command, relaying its output while capturing it.

    stderr is merged into stdout. Output is written to ``stream``
    (default sys.stdout) as it arrives.

    Raises:
        ChildExecutionError: If the process cannot be started.
    """
    out = sys.stdout if stream is None else stream
    sink = getattr(out, "buffer", None)

    try:
        proc = await asyncio.create_subprocess_exec(
            *plan.argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=plan.env,
        )
    except FileNotFoundError as e:
        raise ChildExecutionError(f"Command not found: {plan.argv[0]}") from e
    except PermissionError as e:
        raise ChildExecutionError(f"Permission denied: {plan.argv[0]}") from e
    except OSError as e:
        raise ChildExecutionError(f"Cannot start {plan.argv[0]}: {e}") from e

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    captured: list[str] = []
    while True:
        data = await proc.stdout.read(_READ_CHUNK)
        if not data:
            break
        text = decoder.decode(data)
        captured.append(text)
        if sink is not None:
            out.flush()
            sink.write(data)
            sink.flush()
        else:
            out.write(text)
            out.flush()
    captured.append(decoder.decode(b"", final=True))

    returncode = await proc.wait()
    # Killed by a signal: there is no exit code to relay
    exit_code = 1 if returncode < 0 else returncode
    logger.debug("child_exited", argv=list(plan.argv), returncode=returncode)
    return ExecutionResult(output="".join(captured), exit_code=exit_code)
