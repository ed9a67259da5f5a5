"""Permission gate for agent tool calls.

Decides per tool call whether it may run unattended. Bash calls go through
the shell classifier; everything else (and unsafe bash) is put to the
operator through a FrontendProtocol: allow, skip this call, or abort the
whole task.
"""

import enum
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace

from permgate._approval import classify
from permgate.config import ShellPolicy

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer("permgate.gate")

BASH_TOOL = "bash"
DEFAULT_AUTO_ALLOW_TOOLS = frozenset({"read"})


# ---------------------------------------------------------------------------
# Choices and decisions
# ---------------------------------------------------------------------------


class ApprovalChoice(enum.Enum):
    ALLOW = "allow"   # run this call
    SKIP  = "skip"    # report a failure for this call only
    ABORT = "abort"   # cancel the whole in-flight task


@dataclass(frozen=True)
class GateDecision:
    block: bool = False
    reason: str | None = None
    abort: bool = False

    @property
    def outcome(self) -> str:
        if self.abort:
            return "abort"
        return "block" if self.block else "allow"


ALLOW = GateDecision()


# ---------------------------------------------------------------------------
# FrontendProtocol: the operator-facing collaborator
# ---------------------------------------------------------------------------


@runtime_checkable
class FrontendProtocol(Protocol):
    """Confirmation contract for the gate.

    Implementations: TerminalFrontend (Rich), ScriptedFrontend (tests).
    """

    @property
    def has_ui(self) -> bool:
        """False when no operator can be asked (headless runs)."""
        ...

    def prompt_approval(self, message: str) -> ApprovalChoice | None:
        """Ask the operator. None means the prompt was dismissed."""
        ...


def handle_choice(
    choice: ApprovalChoice | None,
    tool_name: str,
    on_abort: Callable[[], None] | None = None,
) -> GateDecision:
    """Map an operator answer to a decision. A dismissed prompt aborts."""
    if choice is ApprovalChoice.ALLOW:
        return ALLOW
    if choice is ApprovalChoice.SKIP:
        return GateDecision(block=True, reason=f"{tool_name} skipped by user")
    if on_abort is not None:
        on_abort()
    return GateDecision(block=True, reason=f"{tool_name} aborted by user", abort=True)


# ---------------------------------------------------------------------------
# Prompt text
# ---------------------------------------------------------------------------


def _json_display(tool_name: str, tool_input: dict[str, Any]) -> str:
    return f"{tool_name}\n\n{json.dumps(tool_input, indent=2, default=str)}"


def describe_tool_call(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Message shown to the operator for a call that needs confirmation."""
    if tool_name == BASH_TOOL:
        command = tool_input.get("command")
        if len(tool_input) == 1 and isinstance(command, str):
            return f"$ {command}"
        return _json_display(tool_name, tool_input)
    if tool_name == "edit":
        return "Apply this edit?"
    if tool_name == "write":
        return "Write this file?"
    return _json_display(tool_name, tool_input)


# ---------------------------------------------------------------------------
# evaluate_tool_call: main entry point
# ---------------------------------------------------------------------------


def _decide(
    tool_name: str,
    tool_input: dict[str, Any],
    frontend: FrontendProtocol | None,
    policy: ShellPolicy | None,
    auto_allow: frozenset[str],
    on_abort: Callable[[], None] | None,
) -> GateDecision:
    if tool_name in auto_allow:
        return ALLOW

    if frontend is None or not frontend.has_ui:
        return GateDecision(block=True, reason=f"{tool_name} blocked (no UI for confirmation)")

    if tool_name == BASH_TOOL:
        command = tool_input.get("command")
        if isinstance(command, str) and command:
            verdict = classify(command, policy)
            if verdict.safe:
                return ALLOW
            logger.info("confirmation required for %r: %s", command, verdict.reason)

    choice = frontend.prompt_approval(describe_tool_call(tool_name, tool_input))
    return handle_choice(choice, tool_name, on_abort)


def evaluate_tool_call(
    tool_name: str,
    tool_input: dict[str, Any] | None,
    frontend: FrontendProtocol | None,
    *,
    policy: ShellPolicy | None = None,
    auto_allow_tools: Iterable[str] = DEFAULT_AUTO_ALLOW_TOOLS,
    on_abort: Callable[[], None] | None = None,
    tracer: trace.Tracer | None = None,
) -> GateDecision:
    """Decide whether a tool call runs, is skipped, or aborts the task.

    Args:
        tool_name: Agent tool being invoked ("bash", "edit", ...).
        tool_input: Tool arguments; for bash, ``{"command": "..."}``.
        frontend: Operator prompt, or None when running headless.
        policy: Shell policy for bash classification (default tables if None).
        auto_allow_tools: Tools that never need confirmation.
        on_abort: Called once when the operator aborts (cancel in-flight work).
    """
    tool_input = tool_input or {}
    span_tracer = tracer or _tracer
    with span_tracer.start_as_current_span("permission_gate") as span:
        span.set_attribute("gate.tool_name", tool_name)
        decision = _decide(
            tool_name, tool_input, frontend, policy,
            frozenset(auto_allow_tools), on_abort,
        )
        span.set_attribute("gate.outcome", decision.outcome)
        if decision.reason:
            span.set_attribute("gate.reason", decision.reason)

    if decision.block:
        logger.info("%s: %s", decision.outcome, decision.reason)
    else:
        logger.debug("allowed %s call", tool_name)
    return decision
