import pytest

from finance_tracker.config import Settings, build_repository, load_settings
from finance_tracker.rest_storage import RestRepository
from finance_tracker.storage import SQLiteRepository


ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "FINANCE_TRACKER_STORAGE",
    "FINANCE_TRACKER_DB",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "FINANCE_TRACKER_TZ",
    "REQUEST_TIMEOUT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = load_settings()
    assert settings.storage == "sqlite"
    assert settings.timezone == "Europe/Moscow"
    assert settings.request_timeout == 10.0
    assert settings.log_level == "INFO"


def test_env_file_is_read(tmp_path):
    env_file = tmp_path / "bot.env"
    env_file.write_text("TELEGRAM_BOT_TOKEN=42:abc\nLOG_LEVEL=debug\nREQUEST_TIMEOUT=2.5\n", encoding="utf-8")
    settings = load_settings(str(env_file))
    assert settings.bot_token == "42:abc"
    assert settings.log_level == "DEBUG"
    assert settings.request_timeout == 2.5


def test_rest_storage_requires_credentials(monkeypatch):
    monkeypatch.setenv("FINANCE_TRACKER_STORAGE", "rest")
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        load_settings()


def test_unknown_storage_is_rejected(monkeypatch):
    monkeypatch.setenv("FINANCE_TRACKER_STORAGE", "mongo")
    with pytest.raises(ValueError):
        load_settings()


def test_build_repository(tmp_path):
    sqlite_repo = build_repository(Settings(bot_token="", db_path=str(tmp_path / "db.sqlite3")))
    assert isinstance(sqlite_repo, SQLiteRepository)
    sqlite_repo.close()
    rest_repo = build_repository(
        Settings(bot_token="", storage="rest", supabase_url="https://db.example.com", supabase_key="k")
    )
    assert isinstance(rest_repo, RestRepository)
    rest_repo.close()
