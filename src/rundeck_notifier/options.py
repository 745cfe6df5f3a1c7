# options.py
from __future__ import annotations

import re
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .ui.console import Console, get_console


class OptionParseError(ValueError):
    """Raised when option text is not valid properties syntax."""
    pass


Environment = Union[Mapping[str, str], Callable[[], Mapping[str, str]]]

# $VAR and ${VAR}, as build systems expand them
VARIABLE_PATTERN = re.compile(r"\$(?:\{([A-Za-z0-9_.]+)\}|([A-Za-z0-9_]+))")

# $ARTIFACT_NAME{regex} -> name of the first matching artifact
ARTIFACT_NAME_PATTERN = re.compile(r"\$ARTIFACT_NAME\{(.+)\}")

_WHITESPACE = " \t\f"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


# ----------------------------------------------------------------------
# Token expansion
# ----------------------------------------------------------------------

def expand_variables(text: str, env: Mapping[str, str]) -> str:
    """Replace $VAR / ${VAR} with values from env. Unknown variables are kept as written."""
    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = env.get(name)
        return match.group(0) if value is None else str(value)

    return VARIABLE_PATTERN.sub(_sub, text)


def expand_artifact_names(
    text: str,
    artifacts: Iterable[str],
    console: Optional[Console] = None,
) -> str:
    """
    Replace each $ARTIFACT_NAME{regex} with the first artifact whose whole name matches.

    Scanning goes left to right and resumes right after the inserted file name,
    so a file name is never expanded again. Tokens without a matching artifact
    stay in the text.
    """
    console = console or get_console()
    names = list(artifacts)
    idx = 0

    while True:
        match = ARTIFACT_NAME_PATTERN.search(text, idx)
        if not match:
            break

        try:
            pattern = re.compile(match.group(1))
        except re.error as e:
            console.print_warning(f"Invalid artifact pattern {match.group(1)!r} : {e}")
            idx = match.end()
            continue

        for name in names:
            if pattern.fullmatch(name):
                text = text[:match.start()] + name + text[match.end():]
                idx = match.start() + len(name)
                break
        else:
            idx = match.end()

    return text


# ----------------------------------------------------------------------
# Properties parsing (multi-line, key and value separated by = or :)
# ----------------------------------------------------------------------

def _logical_lines(text: str) -> List[str]:
    lines: List[str] = []
    current: Optional[str] = None

    for raw in _LINE_BREAK.split(text):
        line = raw.lstrip(_WHITESPACE)

        if current is None:
            if not line or line[0] in "#!":
                continue
        # an odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        continued = trailing % 2 == 1
        if continued:
            line = line[:-1]

        current = line if current is None else current + line
        if not continued:
            lines.append(current)
            current = None

    if current is not None:
        lines.append(current)
    return lines


def _split_key_value(line: str) -> Tuple[str, str]:
    key_len = 0
    value_start = len(line)
    has_separator = False
    preceding_backslash = False

    while key_len < len(line):
        c = line[key_len]
        if c in "=:" and not preceding_backslash:
            value_start = key_len + 1
            has_separator = True
            break
        if c in _WHITESPACE and not preceding_backslash:
            value_start = key_len + 1
            break
        preceding_backslash = (not preceding_backslash) if c == "\\" else False
        key_len += 1

    while value_start < len(line):
        c = line[value_start]
        if c not in _WHITESPACE:
            if not has_separator and c in "=:":
                has_separator = True
            else:
                break
        value_start += 1

    return line[:key_len], line[value_start:]


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        i += 1
        if c != "\\":
            out.append(c)
            continue
        if i >= len(text):
            break
        c = text[i]
        i += 1
        if c == "u":
            digits = text[i:i + 4]
            if len(digits) != 4 or any(d not in "0123456789abcdefABCDEF" for d in digits):
                raise OptionParseError("Malformed \\uxxxx encoding.")
            out.append(chr(int(digits, 16)))
            i += 4
        else:
            out.append(_ESCAPES.get(c, c))
    return "".join(out)


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse Java-properties style text into a dict.

    Raises:
        OptionParseError: If an escape sequence is malformed
    """
    result: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_key_value(line)
        result[_unescape(key)] = _unescape(value)
    return result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def expand_options(
    text: Optional[str],
    environment: Environment,
    artifacts: Iterable[str],
    console: Optional[Console] = None,
) -> Optional[Dict[str, str]]:
    """
    Turn raw option text into the key/value mapping sent to Rundeck.

    Args:
        text: Multi-line "key=value" text (may be empty)
        environment: Build environment, or a callable returning it
        artifacts: Artifact file names of the build, in build order
        console: Build log (defaults to the global console)

    Returns:
        A dict (possibly empty), or None when the text cannot be parsed.
        Callers must treat None as a failure of the notification.
    """
    console = console or get_console()

    if text is None or not text.strip():
        return {}

    try:
        env = environment() if callable(environment) else environment
        text = expand_variables(text, env)
    except Exception as e:
        console.print_warning(f"Failed to expand environment variables : {e}")

    text = expand_artifact_names(text, artifacts, console)

    try:
        return parse_properties(text)
    except OptionParseError as e:
        console.print_failure(f"Failed to parse : {text}")
        console.print_failure(f"Error : {e}")
        return None
