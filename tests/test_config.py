"""Tests for configuration management."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from library_circulation.config import ServerConfig, get_config, reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


def test_default_config():
    config = ServerConfig()
    assert config.server_name == "library-circulation"
    assert config.transport == "stdio"
    assert config.transaction_max_wait_ms == 10_000
    assert config.transaction_timeout_ms == 20_000
    assert config.transaction_max_attempts == 3
    assert config.transaction_max_wait == 10.0
    assert config.transaction_timeout == 20.0


def test_env_override(monkeypatch):
    monkeypatch.setenv("LIBRARY_CIRCULATION_TRANSACTION_MAX_WAIT_MS", "2500")
    monkeypatch.setenv("LIBRARY_CIRCULATION_TRANSACTION_TIMEOUT_MS", "4000")
    monkeypatch.setenv("LIBRARY_CIRCULATION_DEBUG", "true")

    config = ServerConfig()
    assert config.transaction_max_wait == 2.5
    assert config.transaction_timeout == 4.0
    assert config.is_development


def test_execution_budget_must_cover_wait_budget():
    with pytest.raises(ValidationError, match="transaction_timeout_ms"):
        ServerConfig(transaction_max_wait_ms=5000, transaction_timeout_ms=1000)


def test_page_size_defaults_validated():
    with pytest.raises(ValidationError):
        ServerConfig(default_page_size=50, max_page_size=20)


def test_server_name_validation():
    with pytest.raises(ValidationError):
        ServerConfig(server_name="ab")
    with pytest.raises(ValidationError):
        ServerConfig(server_name="Library Server")


def test_invalid_transport():
    with pytest.raises(ValidationError):
        ServerConfig(transport="carrier-pigeon")


def test_database_url_from_path(tmp_path):
    config = ServerConfig(database_path=tmp_path / "circ.db")
    assert config.get_database_url() == f"sqlite:///{(tmp_path / 'circ.db').absolute()}"


def test_explicit_database_url_wins():
    config = ServerConfig(
        database_path=Path("ignored.db"),
        database_url="postgresql+psycopg://library@localhost/circulation",
    )
    assert config.get_database_url() == "postgresql+psycopg://library@localhost/circulation"


def test_get_config_singleton():
    first = get_config()
    assert get_config() is first

    reset_config()
    assert get_config() is not first
