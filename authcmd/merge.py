"""Tag overlay merging.

A forced command such as ``authcmd deploy backup`` selects the ``deploy``
and ``backup`` overlays from the policy's ``key_tags``. Each overlay is a
partial policy merged on top of the base, in the order the tags were
given. Overlays only add: an absent value never clears a base value.

Field strategies:

- scalar flags and strings: replaced when set in the overlay
- maps: unioned key by key, overlay wins
- allowed_commands: new commands are appended; for a command already in
  the base, list fields are concatenated and maps are unioned

Lists are concatenated without deduplication, so merging the same
overlay twice repeats its patterns.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from authcmd.config import ArgPolicy, Policy, Rule

logger = structlog.get_logger()

# Overridden when the overlay value is not None / not empty
SCALAR_FIELDS: tuple[str, ...] = (
    "show_terse_denied",
    "show_denied",
    "show_allowed",
    "expand_env_vars",
    "enable_logging",
    "log_file",
    "use_shell",
    "help_text",
)

# Unioned key by key
MAP_FIELDS: tuple[str, ...] = ("set_env_vars",)


def _is_set(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return True


def merge_policy(base: Policy, overlay: Policy) -> Policy:
    """Merge one overlay on top of a base policy.

    Neither argument is modified; the merged policy is a new object.
    ``key_tags`` of the overlay are ignored.

    Args:
        base: The policy to extend.
        overlay: The partial policy of a selected tag.

    Returns:
        The merged policy.
    """
    merged = base.model_copy(deep=True)

    for name in SCALAR_FIELDS:
        value = getattr(overlay, name)
        if _is_set(value):
            setattr(merged, name, value)

    for name in MAP_FIELDS:
        value = getattr(overlay, name)
        if value:
            getattr(merged, name).update(value)

    for overlay_rule in overlay.allowed_commands:
        existing = _find_rule(merged.allowed_commands, overlay_rule.command)
        if existing is None:
            merged.allowed_commands.append(overlay_rule.model_copy(deep=True))
        else:
            _merge_rule(existing, overlay_rule)

    return merged


def apply_tags(policy: Policy, tags: Iterable[str]) -> Policy:
    """Merge the overlays selected by the given tags, in order.

    Tags without an overlay are ignored.
    """
    effective = policy
    for tag in tags:
        overlay = policy.key_tags.get(tag)
        if overlay is None:
            logger.debug("tag_overlay_missing", tag=tag)
            continue
        effective = merge_policy(effective, overlay)
        logger.debug("tag_overlay_merged", tag=tag, commands=effective.command_names)
    return effective


def _find_rule(rules: list[Rule], command: str) -> Rule | None:
    """Return the first rule declared for exactly this command string."""
    for rule in rules:
        if rule.command == command:
            return rule
    return None


def _merge_rule(target: Rule, overlay: Rule) -> None:
    """Merge an overlay rule into an existing rule in place."""
    if overlay.args is not None:
        if target.args is None:
            target.args = ArgPolicy()
        target.args.forbidden.extend(overlay.args.forbidden)
        target.args.allowed.extend(overlay.args.allowed)

    target.replace.update(overlay.replace)
    target.set_env_vars.update(overlay.set_env_vars)
    target.must_match.extend(overlay.must_match)
