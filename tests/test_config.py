"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from convocate.config import ConfigManager

ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CONVOCATE_OLLAMA_URL", "CONVOCATE_LOG_LEVEL", "CONVOCATE_HOST",
                 "CONVOCATE_PORT", "CONVOCATE_DEBUG"):
        monkeypatch.delenv(name, raising=False)


def test_default_yaml_loads():
    config = ConfigManager(ROOT).load()

    assert config.ollama.base_url == "http://localhost:11434"
    assert config.upload.max_personas_per_client == 2
    assert config.upload.max_file_bytes == 1024 * 1024
    assert config.upload.allowed_extensions == [".csv", ".json", ".txt", ".xml"]
    assert config.chat.max_messages_per_client == 40
    assert config.chat.transcript_context == 15
    assert config.sampling.max_sample_lines == 75
    assert config.threading.thread_window_minutes == 10
    assert config.scoring.result_ttl_seconds == 600
    assert config.base_path == ROOT


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CONVOCATE_OLLAMA_URL", "http://gpu-box:11434")
    monkeypatch.setenv("CONVOCATE_LOG_LEVEL", "debug")
    monkeypatch.setenv("CONVOCATE_PORT", "8080")
    monkeypatch.setenv("CONVOCATE_DEBUG", "true")

    config = ConfigManager(ROOT).load()

    assert config.ollama.base_url == "http://gpu-box:11434"
    assert config.logging.level == "DEBUG"
    assert config.server.port == 8080
    assert config.server.debug is True


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(tmp_path).load()


def test_summary_names_the_models():
    summary = ConfigManager(ROOT).get_summary()

    assert summary["style_model"] == "qwen2.5:7b"
    assert summary["score_model"] == "qwen2.5:3b"
    assert summary["max_messages_per_client"] == 40
