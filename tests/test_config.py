"""Tests for configuration loading."""

import json

import pytest

from dagflow import config
from dagflow.config import EngineConfig


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point the config file at tmp_path and clear DAGFLOW_* overrides."""
    path = tmp_path / "configuration.json"
    monkeypatch.setattr(config, "DAGFLOW_CONFIG_FILE", path)
    for var in (
        "DAGFLOW_MAX_CONCURRENCY",
        "DAGFLOW_RUN_TIMEOUT",
        "DAGFLOW_NODE_TIMEOUT",
        "DAGFLOW_HTTP_TIMEOUT",
        "DAGFLOW_MODEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return path


def write_config(path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


def test_defaults_without_config_file():
    cfg = EngineConfig()

    assert cfg.max_concurrency == config.DEFAULT_MAX_CONCURRENCY
    assert cfg.run_timeout_seconds == config.DEFAULT_RUN_TIMEOUT
    assert cfg.node_timeout_seconds == config.DEFAULT_NODE_TIMEOUT
    assert cfg.http_timeout_seconds == config.DEFAULT_HTTP_TIMEOUT
    assert cfg.default_model == config.DEFAULT_MODEL
    assert cfg.validate_input is True


def test_config_file_values(isolated_config):
    write_config(
        isolated_config,
        {
            "engine": {"max_concurrency": 3, "run_timeout_seconds": 12.5},
            "llm": {"provider": "openai", "model": "gpt-4o-mini"},
        },
    )

    cfg = EngineConfig()

    assert cfg.max_concurrency == 3
    assert cfg.run_timeout_seconds == 12.5
    assert cfg.node_timeout_seconds == config.DEFAULT_NODE_TIMEOUT
    assert cfg.default_model == "openai/gpt-4o-mini"


def test_environment_overrides_file(isolated_config, monkeypatch):
    write_config(isolated_config, {"engine": {"max_concurrency": 3}})
    monkeypatch.setenv("DAGFLOW_MAX_CONCURRENCY", "16")
    monkeypatch.setenv("DAGFLOW_MODEL", "anthropic/claude-3-5-haiku-latest")

    assert config.get_max_concurrency() == 16
    assert config.get_default_model() == "anthropic/claude-3-5-haiku-latest"


def test_invalid_values_fall_back(monkeypatch, caplog):
    monkeypatch.setenv("DAGFLOW_NODE_TIMEOUT", "soon")

    assert config.get_node_timeout() == config.DEFAULT_NODE_TIMEOUT
    assert "Invalid value" in caplog.text


def test_concurrency_is_at_least_one(monkeypatch):
    monkeypatch.setenv("DAGFLOW_MAX_CONCURRENCY", "0")
    assert config.get_max_concurrency() == 1


def test_unreadable_config_file_is_ignored(isolated_config, caplog):
    isolated_config.write_text("{broken", encoding="utf-8")

    assert config.get_dagflow_config() == {}
    assert "Ignoring unreadable config file" in caplog.text


def test_explicit_values_win():
    cfg = EngineConfig(max_concurrency=1, default_model="test/model")

    assert cfg.max_concurrency == 1
    assert cfg.default_model == "test/model"
