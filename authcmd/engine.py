"""Authorization pipeline for one forced command.

Pipeline:
1. Tokenize the client's command line
2. Find the allowed command rule for the program
3. Check the arguments against the rule
4. Rewrite the arguments
5. Plan the process invocation
6. Run it, or report the denial

Every step raises a ``Denied`` subclass on failure; ``Gatekeeper.handle``
turns those into the client-facing message and the audit entry.
"""

from __future__ import annotations

import asyncio
import getpass
from dataclasses import dataclass
from typing import IO, Mapping, Sequence

import structlog

from authcmd.config import Policy
from authcmd.errors import ChildExecutionError, Denied, NoCommandSpecified
from authcmd.launcher import ExecutionPlan, plan_execution, run_plan
from authcmd.report import format_denial
from authcmd.security.arguments import Diagnostics, evaluate_arguments
from authcmd.security.audit import AuditLogger
from authcmd.security.matcher import check_command
from authcmd.security.tokenizer import split_program

logger = structlog.get_logger()


@dataclass(frozen=True)
class Decision:
    """Terminal outcome of a gatekeeper invocation."""

    exit_code: int
    output: str = ""
    executed: bool = False

    @property
    def denied(self) -> bool:
        return not self.executed


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class Gatekeeper:
    """Decides whether a forced command may run, and runs it."""

    def __init__(
        self,
        policy: Policy,
        tags: Sequence[str] = (),
        audit: AuditLogger | None = None,
        search_path: str | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the gatekeeper.

        Args:
            policy: The effective policy, tag overlays already merged.
            tags: Tags selected on the forced-command line (for logging).
            audit: Audit logger, or None when logging is disabled.
            search_path: PATH used to resolve bare rule commands.
            base_env: Environment the child starts from, defaults to os.environ.
        """
        self._policy = policy
        self._tags = list(tags)
        self._audit = audit
        self._search_path = search_path
        self._base_env = base_env
        self._user = _current_user()
        self.diagnostics = Diagnostics()

    @property
    def policy(self) -> Policy:
        return self._policy

    def authorize(self, command: str | None) -> ExecutionPlan:
        """Run every check on a command line and plan its execution.

        Args:
            command: The raw command line from SSH_ORIGINAL_COMMAND.

        Returns:
            The execution plan for the permitted command.

        Raises:
            Denied: A subclass naming the first failed check.
        """
        if not command:
            raise NoCommandSpecified()

        program, arguments, tokens = split_program(command)
        if not program:
            raise NoCommandSpecified()

        rule = check_command(self._policy, program, self._search_path)
        rewritten = evaluate_arguments(rule, arguments, tokens, self.diagnostics)
        plan = plan_execution(rule, self._policy, rewritten, self._base_env)
        logger.debug("command_authorized", program=program, argv=list(plan.argv))
        return plan

    def deny(self, error: Denied) -> Decision:
        """Build the denial decision for a refused command."""
        logger.info("command_denied", reason=error.reason, tags=self._tags)
        if self._audit is not None:
            self._audit.log_denied(
                self._user, self._tags, error.reason, self.diagnostics.issues
            )
        return Decision(exit_code=1, output=format_denial(self._policy, error.reason))

    async def execute(self, plan: ExecutionPlan, stream: IO[str] | None = None) -> Decision:
        """Run an authorized plan and relay its exit code."""
        if self._audit is not None:
            self._audit.log_running(
                self._user, self._tags, plan.display, self.diagnostics.issues
            )
        try:
            result = await run_plan(plan, stream)
        except ChildExecutionError as e:
            logger.warning("child_failed", argv=list(plan.argv), error=str(e))
            if self._audit is not None:
                self._audit.log_error(self._user, self._tags, plan.display, str(e))
            return Decision(exit_code=e.exit_code or 1, executed=True)

        if self._audit is not None:
            self._audit.log_finished(self._user, self._tags, plan.display, result.exit_code)
        return Decision(exit_code=result.exit_code, output=result.output, executed=True)

    def handle(self, command: str | None, stream: IO[str] | None = None) -> Decision:
        """Authorize and run a command line.

        Child output is written to ``stream`` while it runs; denial text
        is only returned in the decision.

        Args:
            command: The raw command line.
            stream: Where child output is relayed, defaults to sys.stdout.

        Returns:
            The decision with exit code and output.
        """
        try:
            plan = self.authorize(command)
        except Denied as e:
            return self.deny(e)
        return asyncio.run(self.execute(plan, stream))
