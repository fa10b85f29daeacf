import json
import logging
from pathlib import Path

import pytest

from tokenlock.core.config import DEFAULT_STATE_FILE, DEFAULT_TOKEN_DECIMALS, load_settings
from tokenlock.core.exceptions import (
    ConfigurationError,
    NoActiveLockError,
    TimeNotElapsedError,
    get_error_context,
    is_recoverable_error,
)
from tokenlock.core.logging_config import get_logger, setup_logging

ENV_VARS = (
    "TOKENLOCK_ENV",
    "TOKENLOCK_LOG_LEVEL",
    "TOKENLOCK_LOG_FILE",
    "TOKENLOCK_STATE_FILE",
    "TOKENLOCK_TOKEN_DECIMALS",
    "TOKENLOCK_MAX_LOCK_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = load_settings()
        assert settings.environment == "development"
        assert settings.log_level == "INFO"
        assert settings.log_file is None
        assert settings.state_file == DEFAULT_STATE_FILE
        assert settings.token_decimals == DEFAULT_TOKEN_DECIMALS
        assert settings.max_lock_seconds == 0

    def test_overrides(self, clean_env, tmp_path):
        clean_env.setenv("TOKENLOCK_ENV", "Production")
        clean_env.setenv("TOKENLOCK_LOG_LEVEL", "debug")
        clean_env.setenv("TOKENLOCK_STATE_FILE", str(tmp_path / "s.json"))
        clean_env.setenv("TOKENLOCK_TOKEN_DECIMALS", "6")
        clean_env.setenv("TOKENLOCK_MAX_LOCK_SECONDS", "3600")

        settings = load_settings()

        assert settings.environment == "production"
        assert settings.log_level == "DEBUG"
        assert settings.state_file == tmp_path / "s.json"
        assert settings.token_decimals == 6
        assert settings.max_lock_seconds == 3600

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("TOKENLOCK_ENV", "staging"),
            ("TOKENLOCK_LOG_LEVEL", "verbose"),
            ("TOKENLOCK_TOKEN_DECIMALS", "19"),
            ("TOKENLOCK_TOKEN_DECIMALS", "six"),
            ("TOKENLOCK_MAX_LOCK_SECONDS", "-1"),
        ],
    )
    def test_invalid_values(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ConfigurationError) as excinfo:
            load_settings()
        assert excinfo.value.details["env_var"] == name


class TestLogging:
    def test_json_records_carry_context(self, capsys):
        logger = setup_logging(name="tokenlock.test_json", level="INFO", environment="testing")
        logger.info("Vault deployed", extra={"event": "vault.deployed", "vault": "0xabc"})

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["message"] == "Vault deployed"
        assert record["event"] == "vault.deployed"
        assert record["environment"] == "testing"
        assert record["service"] == "tokenlock"
        assert record["level"] == "info"
        assert record["source"]["function"] == "test_json_records_carry_context"

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "tokenlock.json"
        logger = setup_logging(
            name="tokenlock.test_file", log_file=str(log_file), enable_console=False
        )
        logger.warning("written to disk")
        for handler in logger.handlers:
            handler.flush()

        assert json.loads(log_file.read_text().splitlines()[0])["message"] == "written to disk"

    def test_setup_replaces_handlers(self):
        logger = setup_logging(name="tokenlock.test_dupes")
        setup_logging(name="tokenlock.test_dupes")
        assert len(logger.handlers) == 1

    def test_get_logger_configures_once(self):
        logger = get_logger("tokenlock.test_get")
        handlers = list(logger.handlers)
        assert get_logger("tokenlock.test_get").handlers == handlers
        assert logger.level == logging.INFO


class TestErrors:
    def test_time_not_elapsed_is_recoverable(self):
        exc = TimeNotElapsedError("still locked", unlock_time=110, current_time=100)
        assert is_recoverable_error(exc)
        assert exc.remaining_seconds == 10
        assert get_error_context(exc)["remaining_seconds"] == 10

    def test_other_errors_are_not_recoverable(self):
        assert not is_recoverable_error(NoActiveLockError("none"))
        assert not is_recoverable_error(ValueError("x"))

    def test_error_context(self):
        exc = NoActiveLockError("none", details={"depositor": "0xabc"})
        context = get_error_context(exc)
        assert context["error_type"] == "NoActiveLockError"
        assert context["details"] == {"depositor": "0xabc"}
        assert context["recoverable"] is False

    def test_configuration_error_recoverability_follows_constructor(self):
        assert ConfigurationError("bad").recoverable is False
        assert "recoverable" not in vars(ConfigurationError)
        assert ConfigurationError("retry", recoverable=True).recoverable is True
