"""Tests for YAML config loading and environment overrides."""
import pytest
from pydantic import ValidationError

from controverse import config as config_module
from controverse.config import AppConfig, ChatSettings, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def no_port_env(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    reset_config()
    yield
    reset_config()


def test_defaults_when_file_missing(tmp_path):
    cfg = load_config(settings_path=tmp_path / "missing.yaml")

    assert cfg.server.port == 9000
    assert cfg.server.host == "0.0.0.0"
    assert cfg.server.http_rate_limit == 100
    assert cfg.server.http_rate_window_seconds == 900
    assert cfg.chat.max_history == 50
    assert cfg.chat.rate_limit_threshold == 10
    assert cfg.chat.rate_limit_decay_seconds == 60
    assert cfg.chat.nickname_max_length == 20
    assert cfg.chat.profanity_words == ["spam", "badword1", "badword2"]
    assert cfg.logging.level == "info"


def test_values_loaded_from_yaml(tmp_path):
    settings_file = tmp_path / "controverse.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 8123\n"
        "chat:\n"
        "  max_history: 5\n"
        "  profanity_words: [darn]\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert cfg.server.port == 8123
    assert cfg.chat.max_history == 5
    assert cfg.chat.profanity_words == ["darn"]
    assert cfg.logging.level == "debug"


def test_empty_yaml_gives_defaults(tmp_path):
    settings_file = tmp_path / "controverse.settings.yaml"
    settings_file.write_text("", encoding="utf-8")
    assert load_config(settings_path=settings_file) == AppConfig()


def test_port_env_overrides_yaml(tmp_path, monkeypatch):
    settings_file = tmp_path / "controverse.settings.yaml"
    settings_file.write_text("server:\n  port: 8123\n", encoding="utf-8")
    monkeypatch.setenv("PORT", "7777")

    assert load_config(settings_path=settings_file).server.port == 7777


def test_non_numeric_port_env_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("PORT", "not-a-port")
    assert load_config(settings_path=tmp_path / "missing.yaml").server.port == 9000


def test_invalid_limits_rejected():
    with pytest.raises(ValidationError):
        ChatSettings(max_history=0)
    with pytest.raises(ValidationError):
        ChatSettings(rate_limit_threshold=0)


def test_blank_profanity_words_dropped():
    assert ChatSettings(profanity_words=["", "spam"]).profanity_words == ["spam"]


def test_get_config_is_cached(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "SETTINGS_FILE", tmp_path / "missing.yaml")

    first = get_config()
    assert get_config() is first

    reset_config()
    assert get_config() is not first
