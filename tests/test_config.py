"""Tests for config.py and logs.py."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from eduvfs.config import Settings
from eduvfs.logs import LOGGER_NAME, configure_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.environment == "development"
        assert settings.base_url == "http://localhost:3030"
        assert settings.port == 1900
        assert settings.webdav_root == "/remote.php/webdav/"
        assert settings.log_level == "INFO"
        assert settings.cache_ttl == 120.0
        assert settings.delete_permission == "FILESTORAGE_REMOVE"
        assert not settings.is_production

    def test_overrides(self):
        settings = Settings.from_env(
            {
                "NODE_ENV": "production",
                "BASE_URL": "https://api.school.example",
                "PORT": "8080",
                "LOG_DIR": "/var/log/eduvfs",
                "REQUEST_TIMEOUT": "5",
                "CACHE_TTL": "30",
                "LOG_LEVEL": "debug",
            }
        )
        assert settings.is_production
        assert settings.base_url == "https://api.school.example"
        assert settings.port == 8080
        assert settings.log_dir == Path("/var/log/eduvfs")
        assert settings.request_timeout == 5.0
        assert settings.cache_ttl == 30.0
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        ("environment", "level"),
        [("development", "INFO"), ("production", "WARNING"), ("test", "DEBUG")],
    )
    def test_log_level_follows_environment(self, environment: str, level: str):
        assert Settings.from_env({"NODE_ENV": environment}).log_level == level

    def test_zero_ttl_disables_expiry(self):
        assert Settings.from_env({"CACHE_TTL": "0"}).cache_ttl is None

    @pytest.mark.parametrize("port", ["abc", "0", "70000", "80.5"])
    def test_bad_port(self, port: str):
        with pytest.raises(ValueError, match="PORT"):
            Settings.from_env({"PORT": port})

    def test_bad_number(self):
        with pytest.raises(ValueError, match="CACHE_TTL"):
            Settings.from_env({"CACHE_TTL": "soon"})

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        env_file = tmp_path / ".env"
        env_file.write_text("BASE_URL=https://from-dotenv.example\nPORT=2000\n")
        for name in ("BASE_URL", "PORT"):
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        settings = Settings.from_env(dotenv_path=env_file)
        assert settings.base_url == "https://from-dotenv.example"
        assert settings.port == 2000


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _reset(self):
        yield
        logger = logging.getLogger(LOGGER_NAME)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_development_handlers(self, tmp_path: Path):
        logger = configure_logging(Settings(log_dir=tmp_path / "logs"))
        kinds = sorted(type(h).__name__ for h in logger.handlers)
        assert kinds == ["RotatingFileHandler", "StreamHandler"]
        assert logger.level == logging.INFO
        assert (tmp_path / "logs").is_dir()

    def test_production_has_no_console(self, tmp_path: Path):
        logger = configure_logging(
            Settings(environment="production", log_level="WARNING", log_dir=tmp_path)
        )
        assert [type(h).__name__ for h in logger.handlers] == ["RotatingFileHandler"]

    def test_idempotent(self, tmp_path: Path):
        configure_logging(Settings(log_dir=tmp_path))
        logger = configure_logging(Settings(log_dir=tmp_path))
        assert len(logger.handlers) == 2

    def test_error_log_receives_warnings_only(self, tmp_path: Path):
        logger = configure_logging(Settings(log_level="DEBUG", log_dir=tmp_path))
        logging.getLogger(f"{LOGGER_NAME}.fs.web_fs").info("routine listing")
        logging.getLogger(f"{LOGGER_NAME}.fs.web_fs").warning("backend failure")
        for handler in logger.handlers:
            handler.flush()
        content = (tmp_path / "error.log").read_text()
        assert "backend failure" in content
        assert "routine listing" not in content
