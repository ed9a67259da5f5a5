"""Quote-aware scanning of shell command lines.

Only what the classifier needs: which characters are "active" (outside
quotes and not escaped), where the top-level command segments are, and
which redirects are benign enough to strip beforehand. Not a shell grammar.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable


# ---------------------------------------------------------------------------
# Parse state
# ---------------------------------------------------------------------------


@dataclass
class ParseState:
    in_single_quote: bool = False
    in_double_quote: bool = False
    escaped: bool = False

    @property
    def unterminated(self) -> bool:
        """True if input ended inside a quote or right after a backslash."""
        return self.in_single_quote or self.in_double_quote or self.escaped


def advance(char: str, state: ParseState) -> bool:
    """Advance the scanner by one character, updating state.

    Returns True if the character is active (not quoted, not escaped).
    Quote delimiters and backslashes are never active.
    """
    if state.escaped:
        state.escaped = False
        return False

    if char == "\\":
        state.escaped = True
        return False

    if char == "'" and not state.in_double_quote:
        state.in_single_quote = not state.in_single_quote
        return False

    if char == '"' and not state.in_single_quote:
        state.in_double_quote = not state.in_double_quote
        return False

    return not state.in_single_quote and not state.in_double_quote


# ---------------------------------------------------------------------------
# Metacharacter check
# ---------------------------------------------------------------------------


def find_active_metachar(command: str, metachars: Iterable[str]) -> str | None:
    """Return the first active metacharacter in command, or None.

    Examples (metachars "<>{}"):
        grep "pattern {"   → None  (quoted)
        echo {a,b,c}       → "{"   (brace expansion)
        cat file > out     → ">"   (redirect)
        echo \\{            → None  (escaped)
    """
    chars = frozenset(metachars)
    state = ParseState()
    for char in command:
        if advance(char, state) and char in chars:
            return char
    return None


def has_unterminated_quote(command: str) -> bool:
    """True if command ends inside a quote or with a dangling backslash."""
    state = ParseState()
    for char in command:
        advance(char, state)
    return state.unterminated


# ---------------------------------------------------------------------------
# Segment splitting
# ---------------------------------------------------------------------------


def split_segments(command: str, operators: Iterable[str] = "|;&\n") -> list[str]:
    """Split command at active operators, respecting quotes and escapes.

    Runs of operators (``&&``, ``||``, ``;;``, ``| \\n``) form a single
    boundary; empty segments are dropped.

    Examples:
        ls | grep test        → ["ls", "grep test"]
        grep "a|b" | wc       → ['grep "a|b"', "wc"]
        echo "a;b" ; ls       → ['echo "a;b"', "ls"]
    """
    ops = frozenset(operators)
    segments: list[str] = []
    current: list[str] = []
    state = ParseState()

    i = 0
    while i < len(command):
        char = command[i]
        if advance(char, state) and char in ops:
            _flush(current, segments)
            # Skip consecutive operators
            while i + 1 < len(command) and command[i + 1] in ops:
                i += 1
        else:
            current.append(char)
        i += 1

    _flush(current, segments)
    return segments


def _flush(current: list[str], segments: list[str]) -> None:
    part = "".join(current).strip()
    if part:
        segments.append(part)
    current.clear()


# ---------------------------------------------------------------------------
# Benign redirect normalization
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def _compile(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


def _active_mask(command: str) -> list[bool]:
    state = ParseState()
    return [advance(char, state) for char in command]


def strip_benign_redirects(command: str, patterns: tuple[str, ...]) -> str:
    """Remove redirects that only discard output (``2>/dev/null``, ``2>&1``...).

    A match is removed only when every character in it is active, so quoted
    text is left alone and an escaping backslash never ends up in front of
    the character that followed the redirect.

    Applied until nothing more matches, so the result is a fixed point:
    stripping an already-stripped command returns it unchanged.
    Each pass only shrinks the string.

    Examples:
        ls 2>/dev/null | wc     → "ls | wc"
        echo \\>/dev/null;ls     → unchanged (the ">" is escaped)
    """
    compiled = _compile(patterns)
    while True:
        cleaned = command
        for pattern in compiled:
            active = _active_mask(cleaned)
            cleaned = pattern.sub(
                lambda m: "" if all(active[m.start():m.end()]) else m.group(0),
                cleaned,
            )
        if cleaned == command:
            return cleaned
        command = cleaned
