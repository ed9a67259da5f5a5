"""Configuration status and policy table rendering."""

import tomllib
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _dist_version
from pathlib import Path

from rich.table import Table

from permgate.config import SETTINGS_FILE, Settings, ShellPolicy, find_project_config


_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


@dataclass
class StatusInfo:
    version: str
    user_config: str | None  # path to ~/.config/permgate/settings.json or None
    project_config: str | None  # path to .permgate/settings.json or None
    theme: str
    auto_allow_tools: list[str]
    safe_commands: int
    subcommand_tools: int
    multi_level_tools: int  # resource/action + domain tools
    forwarding_commands: int
    max_forward_depth: int


def _version() -> str:
    try:
        return _dist_version("permgate")
    except PackageNotFoundError:
        return tomllib.loads(_PYPROJECT.read_text())["project"]["version"]


def get_status(settings: Settings) -> StatusInfo:
    """Gather configuration status into a plain dataclass (no display side-effects)."""
    policy = settings.policy
    project_config = find_project_config()
    return StatusInfo(
        version=_version(),
        user_config=str(SETTINGS_FILE) if SETTINGS_FILE.exists() else None,
        project_config=str(project_config) if project_config else None,
        theme=settings.theme,
        auto_allow_tools=sorted(settings.auto_allow_tools),
        safe_commands=len(policy.safe_commands),
        subcommand_tools=len(policy.safe_subcommands),
        multi_level_tools=len(policy.resource_actions) + len(policy.domain_tools),
        forwarding_commands=len(policy.forwarding_commands),
        max_forward_depth=policy.max_forward_depth,
    )


def render_status_table(info: StatusInfo) -> Table:
    """Build a Rich Table from StatusInfo using semantic styles."""
    table = Table(title=f"permgate {info.version}")
    table.add_column("Component", style="accent")
    table.add_column("Status", style="info")
    table.add_column("Details", style="success")

    table.add_row("User Config", "Active" if info.user_config else "Defaults", info.user_config or "—")
    if info.project_config:
        table.add_row("Project Config", "Active", info.project_config)
    table.add_row("Theme", info.theme.title(), "—")
    table.add_row("Auto-allowed Tools", str(len(info.auto_allow_tools)), ", ".join(info.auto_allow_tools) or "—")
    table.add_row("Bare Commands", str(info.safe_commands), "read-only utilities")
    table.add_row("Subcommand Rules", str(info.subcommand_tools), "command + verb")
    table.add_row("Multi-level CLIs", str(info.multi_level_tools), "resource/action, domain tools")
    table.add_row(
        "Forwarding Commands", str(info.forwarding_commands),
        f"max depth {info.max_forward_depth}",
    )
    return table


def _join(values) -> str:
    return " ".join(sorted(values)) or "—"


def render_policy_table(policy: ShellPolicy) -> Table:
    """One row per rule family, listing exactly what is whitelisted."""
    table = Table(title="Shell Policy", border_style="accent", expand=False, show_lines=True)
    table.add_column("Rule", style="accent")
    table.add_column("Command")
    table.add_column("Allowed", style="success")

    table.add_row("bare command", "*", _join(policy.safe_commands))
    for cmd, verbs in sorted(policy.safe_subcommands.items()):
        table.add_row("safe subcommand", cmd, _join(verbs))
    for cmd, rule in sorted(policy.resource_actions.items()):
        detail = f"resources: {_join(rule.resources)}\nactions: {_join(rule.actions)}"
        if rule.info_flags:
            detail += f"\nflags: {_join(rule.info_flags)}"
        table.add_row("resource action", cmd, detail)
    for cmd, tools in sorted(policy.domain_tools.items()):
        detail = "\n".join(f"{name}: {_join(actions)}" for name, actions in sorted(tools.items()))
        table.add_row("domain tool", cmd, detail)
    for cmd, fwd in sorted(policy.forwarding_commands.items()):
        table.add_row("forwarded command", cmd, f"argument flags: {_join(fwd.arg_flags)}")
    return table
