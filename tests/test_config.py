"""Functional tests for configuration precedence, validation and policy tables.

Tests exercise real load_config(), no mocks.
"""

import json
import pytest
from pydantic import ValidationError

from permgate.config import DEFAULT_POLICY, find_project_config, load_config, Settings, ShellPolicy


def test_project_config_overrides_user(tmp_path, monkeypatch):
    """Project .permgate/settings.json overrides user settings for the same key."""
    user_settings = tmp_path / "user" / "settings.json"
    user_settings.parent.mkdir(parents=True)
    user_settings.write_text(json.dumps({"theme": "light", "extra_safe_commands": ["make"]}))

    project_dir = tmp_path / "project" / ".permgate"
    project_dir.mkdir(parents=True)
    (project_dir / "settings.json").write_text(json.dumps({"theme": "dark"}))

    monkeypatch.setattr("permgate.config.SETTINGS_FILE", user_settings)
    monkeypatch.chdir(tmp_path / "project")

    settings = load_config()
    assert settings.theme == "dark"
    assert settings.extra_safe_commands == ["make"]


def test_env_overrides_project_config(tmp_path, monkeypatch):
    """Environment variables override project config."""
    project_dir = tmp_path / ".permgate"
    project_dir.mkdir()
    (project_dir / "settings.json").write_text(json.dumps({"theme": "dark"}))

    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PERMGATE_THEME", "light")

    settings = load_config()
    assert settings.theme == "light"


def test_missing_configs_use_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)

    assert find_project_config() is None
    settings = load_config()
    assert settings.theme == "light"
    assert settings.auto_allow_tools == ["read"]
    assert settings.policy == DEFAULT_POLICY


def test_malformed_project_config_skipped(tmp_path, monkeypatch, capsys):
    """Malformed project settings.json is skipped gracefully."""
    project_dir = tmp_path / ".permgate"
    project_dir.mkdir()
    (project_dir / "settings.json").write_text("not json{{{")

    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)

    settings = load_config()
    assert settings.theme == "light"
    assert "Error loading project config" in capsys.readouterr().out


def test_shell_policy_from_project_config(tmp_path, monkeypatch):
    """JSON lists become frozensets; omitted tables keep their defaults."""
    project_dir = tmp_path / ".permgate"
    project_dir.mkdir()
    (project_dir / "settings.json").write_text(json.dumps({
        "shell_policy": {"safe_commands": ["ls", "tree"]},
        "extra_safe_subcommands": {"docker": ["ps"]},
    }))

    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)

    policy = load_config().policy
    assert policy.safe_commands == frozenset({"ls", "tree"})
    assert policy.safe_subcommands["docker"] == frozenset({"ps"})
    assert "gh" in policy.resource_actions


def test_env_extra_safe_commands(tmp_path, monkeypatch):
    """Comma-separated env list is parsed and merged into the base table."""
    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PERMGATE_EXTRA_SAFE_COMMANDS", "make, tree,")

    settings = load_config()
    assert settings.extra_safe_commands == ["make", "tree"]
    assert {"make", "tree", "ls"} <= settings.policy.safe_commands


def test_env_auto_allow_tools(tmp_path, monkeypatch):
    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PERMGATE_AUTO_ALLOW_TOOLS", "read,grep")

    assert load_config().auto_allow_tools == ["read", "grep"]


def test_env_shell_policy_and_depth(tmp_path, monkeypatch):
    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PERMGATE_SHELL_POLICY", json.dumps({"safe_commands": ["ls"]}))
    monkeypatch.setenv("PERMGATE_MAX_FORWARD_DEPTH", "2")

    policy = load_config().policy
    assert policy.safe_commands == frozenset({"ls"})
    assert policy.max_forward_depth == 2


def test_invalid_theme_rejected():
    with pytest.raises(ValidationError):
        Settings(theme="neon")


# --- ShellPolicy ---


def test_policy_is_frozen():
    with pytest.raises(ValidationError):
        DEFAULT_POLICY.max_forward_depth = 5


def test_policy_tables_are_read_only():
    """Shared policies cannot be widened by writing into their tables."""
    with pytest.raises(TypeError):
        DEFAULT_POLICY.safe_subcommands["rm"] = frozenset({"-rf"})
    with pytest.raises(TypeError):
        DEFAULT_POLICY.resource_actions["kubectl"] = DEFAULT_POLICY.resource_actions["gh"]
    with pytest.raises(TypeError):
        DEFAULT_POLICY.domain_tools["ktools"]["shell"] = frozenset({"run"})
    with pytest.raises(TypeError):
        DEFAULT_POLICY.forwarding_commands["env"] = DEFAULT_POLICY.forwarding_commands["xargs"]
    assert "rm" not in DEFAULT_POLICY.safe_subcommands


def test_custom_and_extended_tables_are_read_only():
    custom = ShellPolicy(safe_subcommands={"docker": ["ps"]}, domain_tools={"kt": {"notes": ["list"]}})
    with pytest.raises(TypeError):
        custom.safe_subcommands["docker"] = frozenset({"rm"})
    with pytest.raises(TypeError):
        custom.domain_tools["kt"]["notes"] = frozenset({"delete"})

    extended = DEFAULT_POLICY.extended(safe_subcommands={"docker": ["ps"]})
    with pytest.raises(TypeError):
        extended.safe_subcommands["rm"] = frozenset({"-rf"})


def test_policy_dump_round_trips():
    dumped = DEFAULT_POLICY.model_dump()
    assert isinstance(dumped["safe_subcommands"], dict)
    assert isinstance(dumped["domain_tools"]["ktools"], dict)
    assert ShellPolicy.model_validate(dumped) == DEFAULT_POLICY


def test_invalid_redirect_pattern_rejected():
    with pytest.raises(ValidationError, match="not a valid regex"):
        ShellPolicy(benign_redirects=("(",))


def test_metachars_must_be_single_characters():
    with pytest.raises(ValidationError, match="single characters"):
        ShellPolicy(metachars=frozenset({"$(", "<"}))


def test_negative_forward_depth_rejected():
    with pytest.raises(ValidationError):
        ShellPolicy(max_forward_depth=-1)


def test_extended_returns_new_policy():
    extended = DEFAULT_POLICY.extended(
        safe_commands=["make"],
        safe_subcommands={"git": ["fetch"], "docker": ["ps"]},
    )
    assert extended is not DEFAULT_POLICY
    assert "make" in extended.safe_commands
    assert {"log", "fetch"} <= extended.safe_subcommands["git"]
    assert extended.safe_subcommands["docker"] == frozenset({"ps"})

    assert "make" not in DEFAULT_POLICY.safe_commands
    assert "fetch" not in DEFAULT_POLICY.safe_subcommands["git"]
    assert "docker" not in DEFAULT_POLICY.safe_subcommands


def test_extended_without_additions_is_identity():
    assert DEFAULT_POLICY.extended() is DEFAULT_POLICY


def test_default_tables():
    assert "cd" in DEFAULT_POLICY.safe_commands
    assert DEFAULT_POLICY.metachars == frozenset("<>`$(){}")
    assert DEFAULT_POLICY.forwarding_commands["xargs"].arg_flags >= {"-I", "-n", "-P", "-L"}
    assert DEFAULT_POLICY.max_forward_depth == 1


def test_malformed_env_shell_policy_skipped(tmp_path, monkeypatch, capsys):
    """A bad PERMGATE_SHELL_POLICY is reported and the file/default policy kept."""
    monkeypatch.setattr("permgate.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PERMGATE_SHELL_POLICY", "{not json")
    monkeypatch.setenv("PERMGATE_MAX_FORWARD_DEPTH", "2")

    policy = load_config().policy
    assert "Error parsing PERMGATE_SHELL_POLICY" in capsys.readouterr().out
    assert policy.safe_commands == DEFAULT_POLICY.safe_commands
    assert policy.max_forward_depth == 2
