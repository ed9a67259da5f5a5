"""Shell command safety classification.

A command is safe to run without confirmation when, after stripping benign
redirects, it has no active shell metacharacter, no unterminated quote, and
every segment of its pipe/chain is accepted by the policy pipeline.
Everything else fails closed.
"""

import logging
from dataclasses import dataclass, field

from permgate._policy import match_segment, split_words
from permgate._shell_parse import (
    find_active_metachar,
    has_unterminated_quote,
    split_segments,
    strip_benign_redirects,
)
from permgate.config import DEFAULT_POLICY, ShellPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentVerdict:
    segment: str
    rule: str | None  # name of the accepting policy, None if rejected

    @property
    def safe(self) -> bool:
        return self.rule is not None


@dataclass(frozen=True)
class Verdict:
    safe: bool
    reason: str
    segments: tuple[SegmentVerdict, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return self.safe


def _unsafe(command: str, reason: str, segments: tuple[SegmentVerdict, ...] = ()) -> Verdict:
    logger.debug("unsafe: %s (%r)", reason, command)
    return Verdict(safe=False, reason=reason, segments=segments)


def classify(command: str, policy: ShellPolicy | None = None) -> Verdict:
    """Classify a bash command as safe (auto-run) or unsafe (ask a human).

    Never raises for string input; any ambiguity yields an unsafe verdict.
    """
    if policy is None:
        policy = DEFAULT_POLICY

    clean = strip_benign_redirects(command, policy.benign_redirects)

    char = find_active_metachar(clean, policy.metachars)
    if char is not None:
        return _unsafe(command, f"shell metacharacter {char!r} outside quotes")

    if has_unterminated_quote(clean):
        return _unsafe(command, "unterminated quote or trailing backslash")

    parts = split_segments(clean, policy.segment_operators)
    if not parts:
        return _unsafe(command, "empty command")

    segments = tuple(
        SegmentVerdict(segment=part, rule=match_segment(split_words(part), policy))
        for part in parts
    )
    rejected = [s.segment for s in segments if not s.safe]
    if rejected:
        return _unsafe(command, f"not whitelisted: {rejected[0]!r}", segments)

    reason = "; ".join(f"{s.segment.split()[0]}: {s.rule}" for s in segments)
    logger.debug("safe: %s (%r)", reason, command)
    return Verdict(safe=True, reason=reason, segments=segments)


def is_safe_command(command: str, policy: ShellPolicy | None = None) -> bool:
    """Boolean shorthand for classify(command, policy).safe."""
    return classify(command, policy).safe
