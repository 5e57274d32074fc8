"""Client-facing denial messages.

What a denied client sees is controlled by the policy flags:

- ``show_terse_denied``: only "Denied", nothing else is disclosed
- ``show_denied``: "Denied : <reason>"
- ``show_allowed``: "Allowed : <comma separated commands>"
- ``help_text``: appended as is

With no flag set the client receives no text at all.
"""

from __future__ import annotations

from authcmd.config import Policy
from authcmd.errors import ConfigError

TERSE_DENIAL = "Denied\n"


def format_denial(policy: Policy, reason: str) -> str:
    """Format the denial output for the client according to the policy."""
    if policy.terse:
        return TERSE_DENIAL

    out = ""
    if policy.verbose:
        out += f"Denied : {reason}\n"
    if policy.lists_allowed:
        out += f"Allowed : {','.join(policy.command_names)}\n"
    if policy.help_text:
        out += f"{policy.help_text}\n"
    return out


def format_config_error(error: ConfigError) -> str:
    return f"Could not load config file : {error}\n"
