"""Tests for configuration loading."""

from assessflow.config import load_config
from assessflow.persistence import InMemoryFlowRepository, SQLiteFlowRepository, get_repository


def test_load_config_defaults():
    config = load_config()
    assert config.database_url is None
    assert config.trace_conditions is False
    assert config.log_level == "INFO"


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/flows.db
trace_conditions: true
log_level: DEBUG
"""
    )
    monkeypatch.setenv("ASSESSFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.database_url == "sqlite:///tmp/flows.db"
    assert config.trace_conditions is True
    assert config.log_level == "DEBUG"


def test_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("trace_conditions: true\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite://override.db")
    monkeypatch.setenv("ASSESSFLOW_TRACE_CONDITIONS", "off")

    config = load_config(str(config_path))
    assert config.database_url == "sqlite://override.db"
    assert config.trace_conditions is False


def test_get_repository_defaults_to_memory():
    repo = get_repository()
    assert isinstance(repo, InMemoryFlowRepository)
    assert get_repository() is repo


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "flows.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("ASSESSFLOW_CONFIG", str(config_path))

    repo = get_repository()
    assert isinstance(repo, SQLiteFlowRepository)
    assert repo.db_path == str(db_path)
