"""authcmd exception hierarchy.

Every denial raised while evaluating a command derives from ``Denied``
and carries the reason shown to the client when the policy enables
``show_denied``.
"""

from __future__ import annotations


class AuthcmdError(Exception):
    """Base exception for all authcmd errors."""


class ConfigError(AuthcmdError):
    """Raised when the policy file is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when no policy file can be located."""


class Denied(AuthcmdError):
    """Base class for every reason a command is refused."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class NoCommandSpecified(Denied):
    """Raised when the client opened a session without a command."""

    def __init__(self) -> None:
        super().__init__("direct ssh not allowed, you must specify a command")


class TokenizeError(Denied):
    """Raised when a command line cannot be split into arguments."""


class UnterminatedQuote(TokenizeError):
    """Raised when the input ends inside a quoted section."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"unclosed quote in command line: {command}")


class CommandNotAllowed(Denied):
    """Raised when no rule matches the invoked program."""

    def __init__(self, program: str) -> None:
        self.program = program
        super().__init__(f"command `{program}` not allowed")


class ArgumentForbidden(Denied):
    """Raised when an argument matches a forbidden pattern."""

    def __init__(self, command: str, argument: str, pattern: str) -> None:
        self.command = command
        self.argument = argument
        self.pattern = pattern
        super().__init__(
            f"command `{command}` argument : `{argument}` forbidden : regex `{pattern}`"
        )


class ArgumentNotAllowed(Denied):
    """Raised when an argument matches none of the allowed patterns."""

    def __init__(self, command: str, argument: str) -> None:
        self.command = command
        self.argument = argument
        super().__init__(f"command `{command}` arguments : `{argument}` not allowed")


class MustMatchFailed(Denied):
    """Raised when the argument string does not match a required pattern."""

    def __init__(self, command: str, arguments: str, pattern: str) -> None:
        self.command = command
        self.arguments = arguments
        self.pattern = pattern
        super().__init__(
            f"command `{command}` arguments : `{arguments}` not matching regex `{pattern}`"
        )


class ShellNotFound(Denied):
    """Raised when the configured shell cannot be resolved."""

    def __init__(self, shell: str) -> None:
        self.shell = shell
        super().__init__(f"shell `{shell}` not found in path")


class ArgReparseError(Denied):
    """Raised when rewritten arguments no longer tokenize."""

    def __init__(self, arguments: str, error: str) -> None:
        self.arguments = arguments
        super().__init__(f"unable to parse arguments `{arguments}` : `{error}`")


class ChildExecutionError(AuthcmdError):
    """Raised when the child process fails without a usable exit status.

    ``exit_code`` is None when the failure cannot be reported as a code
    (the process never started); callers map that to exit code 1.
    """

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        super().__init__(message)
