"""Shared pytest fixtures for pimbulk tests."""
import pytest


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point the config lookup at an empty temp dir so a real user config is never read."""
    path = tmp_path / "pimbulk-config.json"
    monkeypatch.setenv("PIMBULK_CONFIG", str(path))
    return path


@pytest.fixture
def write_config(isolated_config):
    """Write a config document to the isolated config path."""
    def _write(text: str):
        isolated_config.write_text(text, encoding="utf-8")
        return isolated_config

    return _write
