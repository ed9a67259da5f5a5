import pytest


_ENV_VARS = (
    "PERMGATE_THEME",
    "PERMGATE_AUTO_ALLOW_TOOLS",
    "PERMGATE_EXTRA_SAFE_COMMANDS",
    "PERMGATE_SHELL_POLICY",
    "PERMGATE_MAX_FORWARD_DEPTH",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Isolate tests from the developer's own PERMGATE_* overrides."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
