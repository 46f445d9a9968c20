"""
Tests for configuration loading and structured logging
"""

import io
import json
import logging
import pytest

from factory_ledger import config as config_module
from factory_ledger.config import LedgerConfig, get_config, reload_config
from factory_ledger.logging_config import JSONFormatter, TextFormatter, setup_logging, log_action
from factory_ledger.storage import InMemoryStorage
from factory_ledger.system import LedgerSystem


@pytest.fixture
def restore_config():
    yield
    reload_config()


class TestLedgerConfig:
    def test_defaults(self):
        config = LedgerConfig()
        assert config.days_in_year == 365
        assert config.enable_audit_logging is True
        assert config.log_format == "json"

    def test_environment_override(self, restore_config, monkeypatch):
        monkeypatch.setenv("FACTORY_LEDGER_DAYS_IN_YEAR", "360")
        monkeypatch.setenv("FACTORY_LEDGER_ENABLE_AUDIT_LOGGING", "false")

        config = reload_config()
        assert config.days_in_year == 360
        assert get_config() is config_module.config

        system = LedgerSystem(storage=InMemoryStorage())
        assert system.loan_manager.days_in_year == 360
        assert system.audit_trail.enabled is False

    def test_explicit_config_wins(self):
        system = LedgerSystem(storage=InMemoryStorage(), config=LedgerConfig(days_in_year=366))
        assert system.loan_manager.days_in_year == 366


class TestStructuredLogging:
    """Test JSON log output"""

    @pytest.fixture
    def captured(self):
        stream = io.StringIO()
        logger = logging.getLogger("factory_ledger.test_capture")
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        yield logger, stream
        logger.removeHandler(handler)

    def test_log_action_fields(self, captured):
        logger, stream = captured
        log_action(
            logger, "info", "Payment recorded",
            actor="clerk", action="record_payment", resource="loan:L1",
            extra={"amount": "1,000.00"}
        )

        entry = json.loads(stream.getvalue().strip())
        assert entry["level"] == "INFO"
        assert entry["message"] == "Payment recorded"
        assert entry["actor"] == "clerk"
        assert entry["action"] == "record_payment"
        assert entry["resource"] == "loan:L1"
        assert entry["extra"] == {"amount": "1,000.00"}

    def test_missing_fields_are_omitted(self, captured):
        logger, stream = captured
        logger.warning("Cash account missing")

        entry = json.loads(stream.getvalue().strip())
        assert entry["level"] == "WARNING"
        assert "actor" not in entry
        assert "extra" not in entry

    def test_below_level_is_skipped(self, captured):
        logger, stream = captured
        log_action(logger, "debug", "noise", actor="clerk")
        assert stream.getvalue() == ""

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", logger_name="factory_ledger.test_setup")
        logger = setup_logging("WARNING", logger_name="factory_ledger.test_setup", log_format="text")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, TextFormatter)
        assert logger.propagate is False
