"""Command-line tokenizer for forced commands.

Splits the raw command string an SSH client sent into a program name and
its arguments. Only quoting and backslash escaping are understood; pipes,
redirections and other shell syntax are plain characters here and are
checked later by the argument policy.
"""

from __future__ import annotations

from authcmd.errors import UnterminatedQuote

_SEPARATORS = frozenset(" \t")
_QUOTES = frozenset("\"'")

# Scanner states
_BETWEEN = "between"
_IN_TOKEN = "token"
_IN_QUOTE = "quote"


def _scan(command: str) -> list[tuple[str, int]]:
    """Scan a command line into (token, end offset) pairs.

    The end offset is the index just past the token's last character,
    closing quote included.
    """
    spans: list[tuple[str, int]] = []
    current: list[str] = []
    state = _BETWEEN
    quote = ""
    escape_next = False

    for index, char in enumerate(command):
        if state == _IN_QUOTE:
            if char == quote:
                spans.append(("".join(current), index + 1))
                current = []
                state = _BETWEEN
            else:
                current.append(char)
            continue

        if escape_next:
            current.append(char)
            escape_next = False
            state = _IN_TOKEN
            continue

        if char == "\\":
            escape_next = True
            continue

        if char in _QUOTES:
            state = _IN_QUOTE
            quote = char
            continue

        if char in _SEPARATORS:
            if state == _IN_TOKEN:
                spans.append(("".join(current), index))
                current = []
                state = _BETWEEN
            continue

        state = _IN_TOKEN
        current.append(char)

    if state == _IN_QUOTE:
        raise UnterminatedQuote(command)

    if current:
        spans.append(("".join(current), len(command)))

    return spans


def tokenize(command: str) -> list[str]:
    """Split a command line into argument tokens.

    A backslash copies the following character verbatim into the current
    token, so an escaped space or quote never separates or quotes;
    ``a \\ b`` yields ``["a", " b"]``.

    A single or double quote copies everything up to the matching quote
    literally; the closing quote ends the token, even an empty one.

    Args:
        command: The raw command line.

    Returns:
        The list of tokens, possibly empty.

    Raises:
        UnterminatedQuote: If the input ends inside a quoted section.
    """
    return [token for token, _ in _scan(command)]


def split_program(command: str) -> tuple[str, str, list[str]]:
    """Split a command line into program, raw argument string and tokens.

    The raw argument string is everything after the program token as it
    was written (its quotes and escapes included), keeping the leading
    separator. Leading blanks before the program are dropped with it.

    Returns:
        Tuple of (program, argument string, argument tokens). The program
        is an empty string when the command line has no tokens.
    """
    spans = _scan(command)
    if not spans:
        return "", "", []
    program, end = spans[0]
    return program, command[end:], [token for token, _ in spans[1:]]
