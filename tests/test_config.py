import pytest

import config
from config import load_settings
from errors import ConfigError

_NAMES = (
    "SERVER_WALLET_SECRET_KEY", "GEMINI_API_KEY", "GEMINI_MODEL", "LEDGER_DATABASE_URL", "PROGRAM_ID",
    "INSIGHT_TIMEOUT_SECONDS", "REQUEST_TIMEOUT_SECONDS", "MAX_IMAGE_BYTES", "BASE_URL", "LOG_LEVEL",
)


def _clear(monkeypatch, *names):
    # setenv first so teardown removes whatever load_dotenv writes later
    for name in names:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def dotenv_paths(monkeypatch):
    paths = []
    monkeypatch.setattr(config, "load_dotenv", lambda path=None: paths.append(path))
    return paths


@pytest.fixture
def env(monkeypatch, dotenv_paths):
    _clear(monkeypatch, *_NAMES)
    monkeypatch.setenv("SERVER_WALLET_SECRET_KEY", "00" * 32)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return monkeypatch


def test_defaults(env, dotenv_paths):
    settings = load_settings()
    assert settings.program_id == "verifresh-program"
    assert settings.gemini_model == "gemini-2.5-flash"
    assert settings.max_image_bytes == 5 * 1024 * 1024
    assert settings.insight_timeout == 30.0
    assert dotenv_paths == [None]


def test_overrides(env):
    env.setenv("PROGRAM_ID", "custom-program")
    env.setenv("INSIGHT_TIMEOUT_SECONDS", "2.5")
    env.setenv("MAX_IMAGE_BYTES", "1024")
    env.setenv("BASE_URL", "https://verifresh.example/")
    settings = load_settings()
    assert settings.program_id == "custom-program"
    assert settings.insight_timeout == 2.5
    assert settings.max_image_bytes == 1024
    assert settings.base_url == "https://verifresh.example"


@pytest.mark.parametrize("name", ["SERVER_WALLET_SECRET_KEY", "GEMINI_API_KEY"])
def test_missing_secret_fails_fast(env, name):
    env.delenv(name)
    with pytest.raises(ConfigError):
        load_settings()


def test_non_numeric_limit_fails_fast(env):
    env.setenv("MAX_IMAGE_BYTES", "five megabytes")
    with pytest.raises(ConfigError):
        load_settings()


def test_values_come_from_dotenv_file(tmp_path, monkeypatch):
    _clear(monkeypatch, *_NAMES)
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        "SERVER_WALLET_SECRET_KEY=" + "11" * 32 + "\n"
        "GEMINI_API_KEY=file-key\n"
        "PROGRAM_ID=from-file\n"
    )
    settings = load_settings(str(dotenv))
    assert settings.gemini_api_key == "file-key"
    assert settings.program_id == "from-file"


def test_process_environment_wins_over_dotenv_file(tmp_path, monkeypatch):
    _clear(monkeypatch, *_NAMES)
    monkeypatch.setenv("SERVER_WALLET_SECRET_KEY", "00" * 32)
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    dotenv = tmp_path / ".env"
    dotenv.write_text("GEMINI_API_KEY=file-key\n")
    assert load_settings(str(dotenv)).gemini_api_key == "env-key"
