"""Policy models and policy file loading.

The policy is a single YAML file describing which commands an SSH key may
run, which arguments they accept, and how denials are reported. Optional
``key_tags`` overlays are merged on top of it for the tags named on the
forced-command line. All models use Pydantic v2 for strict validation.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from authcmd.errors import ConfigError, ConfigNotFoundError

logger = structlog.get_logger()

CONFIG_ENV_VAR = "AUTHCMD_CONFIG_FILE"
CONFIG_FILE_NAME = "authcmd.yml"

# use_shell value selecting the invoking user's login shell ($SHELL)
USE_LOGIN_SHELL = "default"


def _none_to_empty(value: Any, empty: Any) -> Any:
    """YAML keys with no value load as None; treat them as empty."""
    return empty if value is None else value


class ArgPolicy(BaseModel):
    """Per-argument regex rules of an allowed command."""

    model_config = ConfigDict(extra="forbid")

    allowed: list[str] = Field(default_factory=list)
    forbidden: list[str] = Field(default_factory=list)

    @field_validator("allowed", "forbidden", mode="before")
    @classmethod
    def empty_list(cls, v: Any) -> Any:
        return _none_to_empty(v, [])


class Rule(BaseModel):
    """One entry of the allowed command list."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    command: str = Field(min_length=1)
    args: ArgPolicy | None = None
    replace: dict[str, str] = Field(default_factory=dict)
    set_env_vars: dict[str, str] = Field(default_factory=dict, alias="setEnvVars")
    must_match: list[str] = Field(default_factory=list, alias="mustMatch")

    @field_validator("replace", "set_env_vars", mode="before")
    @classmethod
    def empty_map(cls, v: Any) -> Any:
        return _none_to_empty(v, {})

    @field_validator("must_match", mode="before")
    @classmethod
    def empty_list(cls, v: Any) -> Any:
        return _none_to_empty(v, [])


class Policy(BaseModel):
    """Full policy loaded from authcmd.yml.

    Boolean flags are tri-state: None means the key was not set, which
    lets a tag overlay leave the base value alone. String fields use the
    empty string for "not set".

    Keys may be written in snake_case or in the camelCase spelling of
    older authcmd.yml files (``allowedCmd``, ``keyTags``, ...).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    show_terse_denied: bool | None = Field(default=None, alias="showTerseDenied")
    show_denied: bool | None = Field(default=None, alias="showDenied")
    show_allowed: bool | None = Field(default=None, alias="showAllowed")
    expand_env_vars: bool | None = Field(default=None, alias="expandEnvVars")
    enable_logging: bool | None = Field(default=None, alias="enableLogging")
    log_file: str = Field(default="", alias="logFile")
    use_shell: str = Field(default="", alias="useShell")
    help_text: str = Field(default="", alias="helpText")
    set_env_vars: dict[str, str] = Field(default_factory=dict, alias="setEnvVars")
    allowed_commands: list[Rule] = Field(default_factory=list, alias="allowedCmd")
    key_tags: dict[str, Policy] = Field(default_factory=dict, alias="keyTags")

    @field_validator("log_file", "use_shell", "help_text", mode="before")
    @classmethod
    def empty_string(cls, v: Any) -> Any:
        return _none_to_empty(v, "")

    @field_validator("set_env_vars", "key_tags", mode="before")
    @classmethod
    def empty_map(cls, v: Any) -> Any:
        return _none_to_empty(v, {})

    @field_validator("allowed_commands", mode="before")
    @classmethod
    def empty_list(cls, v: Any) -> Any:
        return _none_to_empty(v, [])

    @property
    def terse(self) -> bool:
        return bool(self.show_terse_denied)

    @property
    def verbose(self) -> bool:
        return bool(self.show_denied)

    @property
    def lists_allowed(self) -> bool:
        return bool(self.show_allowed)

    @property
    def expands_env_vars(self) -> bool:
        return bool(self.expand_env_vars)

    @property
    def logging_enabled(self) -> bool:
        return bool(self.enable_logging)

    @property
    def command_names(self) -> list[str]:
        """Return the allowed command names in declaration order."""
        return [rule.command for rule in self.allowed_commands]


def locate_config_file(explicit: str | Path | None = None) -> Path:
    """Find the policy file to load.

    Lookup order: the explicit path, the AUTHCMD_CONFIG_FILE environment
    variable if it names an existing file, ~/authcmd.yml, ./authcmd.yml.

    Raises:
        ConfigNotFoundError: If no candidate exists.
    """
    if explicit is not None:
        return Path(explicit)

    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env and Path(from_env).is_file():
        return Path(from_env)

    candidates = [Path.home() / CONFIG_FILE_NAME, Path(CONFIG_FILE_NAME)]
    for candidate in candidates:
        if candidate.is_file():
            return candidate

    raise ConfigNotFoundError("did not find any config file")


def load_policy(path: str | Path) -> Policy:
    """Load and validate a policy file.

    An empty file is an empty policy (everything denied).

    Raises:
        ConfigError: If the file cannot be read, parsed, or validated.
    """
    config_path = Path(path)
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("top level must be a mapping")
        policy = Policy(**data)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
        raise ConfigError(
            f"cannot read config file `{config_path}` got error `{e}`"
        ) from e

    logger.debug(
        "policy_loaded",
        path=str(config_path),
        commands=len(policy.allowed_commands),
        key_tags=list(policy.key_tags),
    )
    return policy


def load_effective_policy(
    tags: Iterable[str] = (),
    explicit: str | Path | None = None,
) -> Policy:
    """Locate and load the policy file, then merge the selected tag overlays.

    Args:
        tags: Tags from the forced-command line, in invocation order.
        explicit: Optional path overriding the lookup.

    Returns:
        The effective policy for this invocation.

    Raises:
        ConfigError: If the policy cannot be located or loaded.
    """
    from authcmd.merge import apply_tags

    policy = load_policy(locate_config_file(explicit))
    return apply_tags(policy, tags)
