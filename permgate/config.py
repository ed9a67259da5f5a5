import os
import re
import json
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

APP_NAME = "permgate"

# Side-effect-free utilities: listing, reading, filtering, printing, path queries.
# "cd" changes shell state only, never the filesystem.
_DEFAULT_SAFE_COMMANDS: frozenset[str] = frozenset({
    # Filesystem listing
    "ls", "find", "file", "stat",
    # File reading
    "cat", "head", "tail", "less", "more",
    # Search / text processing (read-only)
    "grep", "wc", "cut", "sort", "uniq", "jq",
    # Output
    "echo",
    # Path / identity queries
    "pwd", "which", "printenv",
    # Working directory
    "cd",
})

# Commands whose danger depends on the verb: first word -> allowed second words
_DEFAULT_SAFE_SUBCOMMANDS: dict[str, frozenset[str]] = {
    "git": frozenset({
        "log", "show", "diff", "status", "branch", "remote",
        "ls-files", "ls-tree", "blame", "describe", "tag",
    }),
    "jar": frozenset({
        "-tf",     # list contents of file
        "-t",      # list contents
        "--list",  # list contents (long form)
    }),
}

# Flags that take a following argument for xargs (GNU + BSD short and long forms)
_XARGS_ARG_FLAGS: frozenset[str] = frozenset({
    "-I", "-i", "-n", "-s", "-P", "-L", "-l", "-d", "-a", "-E",
    "--max-args", "--max-procs", "--max-lines", "--max-chars",
    "--delimiter", "--arg-file",
})

# Redirects that only discard output or merge stderr into stdout.
# fd-prefixed forms must start a word; every form must end one.
_WORD_START = r"(?<![^\s|;&])"
_WORD_END = r"(?=[\s|;&<>]|$)"
_DEFAULT_BENIGN_REDIRECTS: tuple[str, ...] = (
    r"\s*" + _WORD_START + r"2>\s*/dev/null" + _WORD_END,   # cat file.txt 2>/dev/null
    r"\s*" + _WORD_START + r"1>\s*/dev/null" + _WORD_END,   # ls -la 1>/dev/null
    r"\s*&>\s*/dev/null" + _WORD_END,                       # find . -name x &>/dev/null
    r"\s*>\s*/dev/null" + _WORD_END,                        # grep pattern file >/dev/null
    r"\s*" + _WORD_START + r"2>&1" + _WORD_END,              # git status 2>&1
    r"\s*" + _WORD_START + r"2>>&1" + _WORD_END,             # ls 2>>&1 (malformed, seen in the wild)
)

# XDG Paths - Explicit XDG resolution so ~/.config/ is used even on macOS
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / APP_NAME
SETTINGS_FILE = CONFIG_DIR / "settings.json"

Theme = Literal["light", "dark"]


def _readonly(table: Mapping) -> Mapping:
    """Read-only view of a rule table, nested tables included."""
    return MappingProxyType({
        key: _readonly(value) if isinstance(value, Mapping) else value
        for key, value in table.items()
    })


def _plain(table: Mapping) -> dict:
    return {key: _plain(value) if isinstance(value, Mapping) else value for key, value in table.items()}


class ResourceActionRule(BaseModel):
    """Whitelist for CLIs shaped as ``tool <resource> <action>`` (e.g. gh)."""
    model_config = ConfigDict(frozen=True)

    resources: frozenset[str] = Field(default_factory=frozenset)
    actions: frozenset[str] = Field(default_factory=frozenset)
    # Informational flags accepted as the only argument, e.g. "gh --version"
    info_flags: frozenset[str] = Field(default_factory=frozenset)


class ForwardingRule(BaseModel):
    """A command that runs another command per input item (e.g. xargs)."""
    model_config = ConfigDict(frozen=True)

    arg_flags: frozenset[str] = Field(default_factory=frozenset)


class ShellPolicy(BaseModel):
    """Immutable rule tables consumed by the shell command classifier.

    Build a new policy to extend it (``extended()`` or ``model_copy``);
    instances are shared read-only across callers.
    """
    model_config = ConfigDict(frozen=True, validate_default=True)

    safe_commands: frozenset[str] = Field(default=_DEFAULT_SAFE_COMMANDS)
    safe_subcommands: Mapping[str, frozenset[str]] = Field(
        default_factory=lambda: dict(_DEFAULT_SAFE_SUBCOMMANDS)
    )
    resource_actions: Mapping[str, ResourceActionRule] = Field(
        default_factory=lambda: {
            "gh": ResourceActionRule(
                resources=frozenset({"repo", "pr", "issue", "release", "run", "workflow", "gist"}),
                actions=frozenset({"view", "list", "show", "search", "status", "diff", "checks", "watch"}),
                info_flags=frozenset({"--version"}),
            ),
        }
    )
    # tool -> sub-tool -> allowed actions, e.g. "ktools yt-transcript list"
    domain_tools: Mapping[str, Mapping[str, frozenset[str]]] = Field(
        default_factory=lambda: {
            "ktools": {"yt-transcript": frozenset({"list", "get", "chapters"})},
        }
    )
    forwarding_commands: Mapping[str, ForwardingRule] = Field(
        default_factory=lambda: {"xargs": ForwardingRule(arg_flags=_XARGS_ARG_FLAGS)}
    )
    max_forward_depth: int = Field(default=1, ge=0, le=8)

    # Redirection, substitution, subshells, brace expansion
    metachars: frozenset[str] = Field(default=frozenset("<>`$(){}"))
    # Newline separates commands just like ';'
    segment_operators: frozenset[str] = Field(default=frozenset("|;&\n"))
    benign_redirects: tuple[str, ...] = Field(default=_DEFAULT_BENIGN_REDIRECTS)

    @field_validator("safe_subcommands", "resource_actions", "domain_tools", "forwarding_commands")
    @classmethod
    def _freeze_tables(cls, v: Mapping) -> Mapping:
        return _readonly(v)

    @field_serializer("safe_subcommands", "resource_actions", "domain_tools", "forwarding_commands")
    def _serialize_tables(self, v: Mapping) -> dict[str, Any]:
        return _plain(v)

    @field_validator("benign_redirects")
    @classmethod
    def _validate_redirects(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"benign_redirects entry {pattern!r} is not a valid regex: {e}")
        return v

    @field_validator("metachars", "segment_operators")
    @classmethod
    def _validate_single_chars(cls, v: frozenset[str]) -> frozenset[str]:
        bad = sorted(c for c in v if len(c) != 1)
        if bad:
            raise ValueError(f"expected single characters, got: {bad}")
        return v

    def extended(
        self,
        *,
        safe_commands: list[str] | None = None,
        safe_subcommands: dict[str, list[str]] | None = None,
    ) -> "ShellPolicy":
        """Return a new policy with extra bare commands / subcommands merged in."""
        if not safe_commands and not safe_subcommands:
            return self
        subcommands = dict(self.safe_subcommands)
        for cmd, verbs in (safe_subcommands or {}).items():
            subcommands[cmd] = subcommands.get(cmd, frozenset()) | frozenset(verbs)
        return self.model_copy(update={
            "safe_commands": self.safe_commands | frozenset(safe_commands or ()),
            "safe_subcommands": _readonly(subcommands),
        })


DEFAULT_POLICY = ShellPolicy()


class Settings(BaseModel):
    # Display
    theme: Theme = Field(default="light")

    # Tools that never need confirmation
    auto_allow_tools: list[str] = Field(default=["read"])

    # Shell policy: base tables plus operator additions
    shell_policy: ShellPolicy = Field(default_factory=ShellPolicy)
    extra_safe_commands: list[str] = Field(default=[])
    extra_safe_subcommands: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("auto_allow_tools", "extra_safe_commands", mode="before")
    @classmethod
    def _parse_comma_list(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @model_validator(mode="before")
    @classmethod
    def fill_from_env(cls, data: dict) -> dict:
        """Env vars override all file-based values (highest precedence layer)."""
        env_map = {
            "theme": "PERMGATE_THEME",
            "auto_allow_tools": "PERMGATE_AUTO_ALLOW_TOOLS",
            "extra_safe_commands": "PERMGATE_EXTRA_SAFE_COMMANDS",
        }

        for field, env_var in env_map.items():
            val = os.getenv(env_var)
            if val:
                data[field] = val

        policy_env = os.getenv("PERMGATE_SHELL_POLICY")
        if policy_env:
            try:
                data["shell_policy"] = json.loads(policy_env)
            except json.JSONDecodeError as e:
                print(f"Error parsing PERMGATE_SHELL_POLICY: {e}. Ignoring.")

        depth = os.getenv("PERMGATE_MAX_FORWARD_DEPTH")
        if depth:
            policy_data = data.get("shell_policy", {})
            if isinstance(policy_data, ShellPolicy):
                policy_data = policy_data.model_dump()
            elif not isinstance(policy_data, dict):
                policy_data = {}
            data["shell_policy"] = {**policy_data, "max_forward_depth": depth}
        return data

    @property
    def policy(self) -> ShellPolicy:
        """Effective shell policy: base tables extended with operator additions."""
        return self.shell_policy.extended(
            safe_commands=self.extra_safe_commands,
            safe_subcommands=self.extra_safe_subcommands,
        )


def find_project_config() -> Path | None:
    """Return .permgate/settings.json in cwd if it exists, else None."""
    candidate = Path.cwd() / f".{APP_NAME}" / "settings.json"
    return candidate if candidate.is_file() else None


def load_config() -> Settings:
    data: dict = {}

    # Layer 1: User config (~/.config/permgate/settings.json)
    if SETTINGS_FILE.exists():
        with open(SETTINGS_FILE, "r") as f:
            try:
                data = json.load(f)
            except Exception as e:
                print(f"Error loading settings.json: {e}. Using defaults.")

    # Layer 2: Project config (<cwd>/.permgate/settings.json): shallow merge
    project_config = find_project_config()
    if project_config is not None:
        with open(project_config, "r") as f:
            try:
                data |= json.load(f)
            except Exception as e:
                print(f"Error loading project config {project_config}: {e}. Skipping.")

    # Layer 3: Env vars (handled by fill_from_env model_validator)
    return Settings.model_validate(data)


# Lazy settings singleton, loaded on first access.
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the global Settings instance, creating it on first call."""
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def __getattr__(name: str):
    """Lazy module attribute: ``from permgate.config import settings`` works without import-time side effects."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
