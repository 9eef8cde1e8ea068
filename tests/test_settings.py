import logging

from tracker.app.logging_utils import get_logger, log_operation
from tracker.app.services import build_services
from tracker.app.settings import Settings
from tracker.app.status import OpenWorkflowPolicy, StrictTerminalPolicy
from tracker.app.store import MemoryStore, SqlStore


def test_defaults(monkeypatch):
    monkeypatch.delenv("TRACKER_STORE", raising=False)
    settings = Settings(_env_file=None)
    assert settings.store == "sql"
    assert settings.database_url.startswith("sqlite:///")
    assert settings.strict_terminal is False
    assert settings.max_write_attempts == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TRACKER_STORE", "memory")
    monkeypatch.setenv("TRACKER_STRICT_TERMINAL", "true")
    monkeypatch.setenv("TRACKER_PORT", "9001")
    settings = Settings(_env_file=None)
    assert settings.store == "memory"
    assert settings.strict_terminal is True
    assert settings.port == 9001


def test_build_services_memory():
    services = build_services(Settings(store="memory", strict_terminal=True, _env_file=None))
    assert isinstance(services.store, MemoryStore)
    assert isinstance(services.lifecycle.policy, StrictTerminalPolicy)
    assert services.scanner.lifecycle is services.lifecycle
    assert services.pairing.store is services.store


def test_build_services_sql(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'x.db'}", _env_file=None)
    services = build_services(settings)
    try:
        assert isinstance(services.store, SqlStore)
        assert isinstance(services.lifecycle.policy, OpenWorkflowPolicy)
        pkg = services.lifecycle.create("Alice", "Bob", "NYC")
    finally:
        services.close()

    # a fresh process sees the same record
    reopened = build_services(settings)
    try:
        assert reopened.lifecycle.lookup(pkg.tracking_number) == pkg
    finally:
        reopened.close()


def test_log_operation_attaches_context(caplog):
    logger = get_logger("tracker.app.lifecycle")
    with caplog.at_level(logging.INFO, logger="tracker"):
        log_operation(logger, "append_checkpoint", "success", package_id="abcd1234", order=2)
    record = caplog.records[-1]
    assert logger.name == "tracker.lifecycle"
    assert record.operation == "append_checkpoint"
    assert record.package_id == "abcd1234"
    assert "order=2" in record.getMessage()
