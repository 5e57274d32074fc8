"""CLI entry point for the authcmd forced-command gatekeeper using Click.

Install as the forced command of an SSH key, optionally with tags that
select policy overlays::

    command="authcmd deploy backup" ssh-ed25519 AAAA...

The command the client asked for is read from SSH_ORIGINAL_COMMAND.
"""

from __future__ import annotations

import logging
import os
import sys

import click
import structlog

from authcmd import __version__
from authcmd.config import Policy, load_effective_policy
from authcmd.engine import Gatekeeper
from authcmd.errors import ConfigError
from authcmd.report import format_config_error
from authcmd.security.audit import open_audit_log

logger = structlog.get_logger()

ORIGINAL_COMMAND_ENV_VAR = "SSH_ORIGINAL_COMMAND"
LOG_LEVEL_ENV_VAR = "AUTHCMD_LOG_LEVEL"

EXIT_CONFIG_ERROR = 2


def _configure_logging(log_level: str) -> None:
    """Configure structlog for diagnostics on stderr.

    stdout belongs to the SSH session, so diagnostics never go there.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.ERROR)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _show_summary(policy: Policy, tags: tuple[str, ...]) -> None:
    """Print the effective policy without handling a command."""
    click.echo("Configuration OK")
    if tags:
        click.echo(f"  Tags: {', '.join(tags)}")
    click.echo(f"  Key tags defined: {', '.join(policy.key_tags) or '-'}")
    click.echo(f"  Use shell: {policy.use_shell or '-'}")
    click.echo(f"  Expand env vars: {policy.expands_env_vars}")
    click.echo(f"  Logging: {policy.logging_enabled}")
    click.echo(f"  Allowed commands: {len(policy.allowed_commands)}")
    for rule in policy.allowed_commands:
        details = []
        if rule.args is not None:
            details.append(f"allowed={len(rule.args.allowed)}")
            details.append(f"forbidden={len(rule.args.forbidden)}")
        if rule.must_match:
            details.append(f"must_match={len(rule.must_match)}")
        if rule.replace:
            details.append(f"replace={len(rule.replace)}")
        suffix = f" ({', '.join(details)})" if details else ""
        click.echo(f"    - {rule.command}{suffix}")


@click.command()
@click.version_option(version=__version__, prog_name="authcmd")
@click.argument("tags", nargs=-1)
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Policy file. Defaults to AUTHCMD_CONFIG_FILE, ~/authcmd.yml or ./authcmd.yml.",
)
@click.option(
    "--check",
    is_flag=True,
    default=False,
    help="Validate the policy (with tags applied) and print a summary.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostics level on stderr. Defaults to AUTHCMD_LOG_LEVEL env or ERROR.",
)
def cli(tags: tuple[str, ...], config_file: str | None, check: bool, log_level: str | None) -> None:
    """Run SSH_ORIGINAL_COMMAND if the policy allows it.

    TAGS select overlays from the policy's key_tags, merged in order.
    """
    level = log_level or os.environ.get(LOG_LEVEL_ENV_VAR, "ERROR")
    _configure_logging(level)

    try:
        policy = load_effective_policy(tags, config_file)
    except ConfigError as e:
        click.echo(format_config_error(e), nl=False)
        sys.exit(EXIT_CONFIG_ERROR)

    if check:
        _show_summary(policy, tags)
        return

    audit = open_audit_log(policy)
    try:
        gatekeeper = Gatekeeper(policy, tags=tags, audit=audit)
        decision = gatekeeper.handle(os.environ.get(ORIGINAL_COMMAND_ENV_VAR))
    finally:
        if audit is not None:
            audit.close()

    if decision.denied and decision.output:
        click.echo(decision.output, nl=False)
    sys.exit(decision.exit_code)


if __name__ == "__main__":
    cli()
