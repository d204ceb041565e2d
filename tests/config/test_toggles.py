from __future__ import annotations

import logging

import pytest

from dialogue_forge.config import configure_logging, ensure_database_path, get_settings
from dialogue_forge.config import toggles as toggle_module


def reset_cache() -> None:
    toggle_module.get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    reset_cache()
    yield
    reset_cache()


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("FORGE_DB_PATH", str(tmp_path / "forge.sqlite3"))
    for key in ("FORGE_LOG_LEVEL", "FORGE_MAX_CALL_STACK_DEPTH", "FORGE_RESOLVE_STORYLETS"):
        monkeypatch.delenv(key, raising=False)
    settings = get_settings()
    assert settings.db_path_obj.name == "forge.sqlite3"
    assert settings.log_level == "INFO"
    assert settings.max_call_stack_depth == 32
    assert settings.resolve_storylets is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORGE_LOG_LEVEL", "debug")
    monkeypatch.setenv("FORGE_MAX_RUNNER_STEPS", "50")
    monkeypatch.setenv("FORGE_FAIL_ON_MISSING_GRAPH", "false")
    settings = get_settings()
    assert settings.log_level == "DEBUG"
    assert settings.max_runner_steps == 50
    assert settings.fail_on_missing_graph is False


def test_settings_are_memoised(monkeypatch: pytest.MonkeyPatch) -> None:
    assert get_settings() is get_settings()


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORGE_LOG_LEVEL", "LOUD")
    with pytest.raises(RuntimeError, match="Invalid Dialogue Forge configuration"):
        get_settings()


def test_runner_limits_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORGE_MAX_CALL_STACK_DEPTH", "0")
    with pytest.raises(RuntimeError):
        get_settings()


def test_telegram_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "  ")
    assert not get_settings().has_telegram_credentials()


def test_ensure_database_path_fixes_suffix(tmp_path) -> None:
    path = ensure_database_path(tmp_path / "nested" / "store.db")
    assert path.suffix == ".sqlite3"
    assert path.parent.exists()


def test_configure_logging_applies_level() -> None:
    assert configure_logging("warning") == logging.WARNING
    assert logging.getLogger().level == logging.WARNING
    configure_logging("INFO")
