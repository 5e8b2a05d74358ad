"""Tests for typedrow.settings module."""

from typedrow.settings import TypedRowSettings, get_settings, reset_settings


class TestTypedRowSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("DIALECT", "LOG_QUERIES", "LOG_ARGS", "LOG_LEVEL", "JSON_LOGS", "SERVICE_NAME"):
            monkeypatch.delenv(f"TYPEDROW_{name}", raising=False)
        settings = TypedRowSettings(_env_file=None)
        assert settings.dialect == "postgres"
        assert settings.log_queries is True
        assert settings.log_args is True
        assert settings.log_level == "INFO"
        assert settings.json_logs is None
        assert settings.service_name == "typedrow"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TYPEDROW_DIALECT", " oracle ")
        monkeypatch.setenv("TYPEDROW_LOG_ARGS", "false")
        monkeypatch.setenv("TYPEDROW_JSON_LOGS", "true")
        settings = TypedRowSettings(_env_file=None)
        assert settings.dialect == "oracle"
        assert settings.log_args is False
        assert settings.json_logs is True

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_rereads_environment(self, monkeypatch):
        monkeypatch.setenv("TYPEDROW_LOG_LEVEL", "DEBUG")
        reset_settings()
        assert get_settings().log_level == "DEBUG"
        monkeypatch.setenv("TYPEDROW_LOG_LEVEL", "ERROR")
        assert get_settings().log_level == "DEBUG"
        reset_settings()
        assert get_settings().log_level == "ERROR"
