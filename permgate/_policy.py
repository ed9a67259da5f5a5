"""Policy pipeline for a single shell command segment.

Each policy is a pure predicate over the segment's words. A segment is safe
when ANY policy accepts it. Rule data lives in ShellPolicy; nothing here
needs to change to whitelist more commands.
"""

from collections.abc import Callable

from permgate.config import ShellPolicy


PolicyChecker = Callable[[list[str], ShellPolicy, int], bool]


def check_simple_safe_command(words: list[str], policy: ShellPolicy, depth: int) -> bool:
    """First word is a side-effect-free utility (ls, cat, grep, ...)."""
    return words[0] in policy.safe_commands


def check_safe_subcommand(words: list[str], policy: ShellPolicy, depth: int) -> bool:
    """First word has a verb whitelist and the second word is on it (git log)."""
    allowed = policy.safe_subcommands.get(words[0])
    if allowed is None:
        return False
    return len(words) > 1 and words[1] in allowed


def check_resource_action(words: list[str], policy: ShellPolicy, depth: int) -> bool:
    """``tool <resource> <action>`` CLIs such as ``gh pr list``.

    A lone informational flag (``gh --version``) is accepted without an action.
    """
    rule = policy.resource_actions.get(words[0])
    if rule is None or len(words) < 2:
        return False

    second = words[1]
    if second.startswith("-"):
        return second in rule.info_flags

    return len(words) > 2 and second in rule.resources and words[2] in rule.actions


def check_domain_tool(words: list[str], policy: ShellPolicy, depth: int) -> bool:
    """``tool <name> <action>`` CLIs, e.g. ``ktools yt-transcript list VIDEO_ID``."""
    tools = policy.domain_tools.get(words[0])
    if tools is None or len(words) < 3:
        return False
    actions = tools.get(words[1])
    return actions is not None and words[2] in actions


def check_forwarded_command(words: list[str], policy: ShellPolicy, depth: int) -> bool:
    """``xargs [flags] command [args]`` is as safe as the command it runs.

    Flags in arg_flags consume the next word. A dangling argument flag or a
    missing command is malformed and rejected.
    """
    rule = policy.forwarding_commands.get(words[0])
    if rule is None:
        return False
    if depth >= policy.max_forward_depth:
        return False

    i = 1
    while i < len(words) and words[i].startswith("-"):
        flag = words[i]
        i += 1
        if flag in rule.arg_flags:
            if i >= len(words):
                return False
            i += 1

    if i >= len(words):
        return False

    return match_segment(words[i:], policy, depth + 1) is not None


# Cheap-to-expensive; order never changes the verdict.
POLICY_CHECKS: list[tuple[str, PolicyChecker]] = [
    ("bare command", check_simple_safe_command),
    ("safe subcommand", check_safe_subcommand),
    ("resource action", check_resource_action),
    ("domain tool", check_domain_tool),
    ("forwarded command", check_forwarded_command),
]


def split_words(segment: str) -> list[str]:
    return segment.split()


def match_segment(words: list[str], policy: ShellPolicy, depth: int = 0) -> str | None:
    """Return the name of the first policy accepting words, or None.

    An empty word list never matches.
    """
    if not words:
        return None
    for name, check in POLICY_CHECKS:
        if check(words, policy, depth):
            return name
    return None
