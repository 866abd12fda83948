"""Tests for environment-driven settings."""
import pytest

from clinic_booking import config
from clinic_booking.config import Settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CLINIC_DATABASE_URL", "CLINIC_LOG_LEVEL", "CLINIC_BCRYPT_ROUNDS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings(dotenv=False)

    assert settings == Settings()
    assert settings.database_url is None
    assert settings.bcrypt_rounds == config.DEFAULT_BCRYPT_ROUNDS


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("CLINIC_DATABASE_URL", "sqlite:///clinic.db")
    monkeypatch.setenv("CLINIC_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CLINIC_BCRYPT_ROUNDS", "5")

    settings = load_settings(dotenv=False)

    assert settings.database_url == "sqlite:///clinic.db"
    assert settings.log_level == "DEBUG"
    assert settings.bcrypt_rounds == 5


def test_empty_database_url_means_memory(monkeypatch):
    monkeypatch.setenv("CLINIC_DATABASE_URL", "")
    assert load_settings(dotenv=False).database_url is None


def test_default_doctors_use_default_template():
    for doctor in config.DEFAULT_DOCTORS:
        assert doctor["timeSlots"] == config.DEFAULT_TIME_SLOTS
