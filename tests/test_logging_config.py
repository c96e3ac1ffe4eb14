import logging

import pytest
import structlog

from richlink_api.configurations import logging_config


@pytest.fixture
def root_logger(monkeypatch):
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setattr(logging_config.settings, "env", "dev")
    yield root
    root.handlers = handlers
    root.setLevel(level)


def test_console_logging_replaces_handlers_and_quiets_clients(root_logger):
    logging_config.setup_logging("debug")

    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert isinstance(
        root_logger.handlers[0].formatter, structlog.stdlib.ProcessorFormatter
    )
    for name in logging_config.QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_cloud_logging_only_in_prod_with_project(monkeypatch):
    monkeypatch.setattr(logging_config.settings, "env", "prod")
    monkeypatch.setattr(logging_config.settings, "gcp_project_id", None)
    assert not logging_config._use_cloud_logging()

    monkeypatch.setattr(logging_config.settings, "gcp_project_id", "richlink-prod")
    assert logging_config._use_cloud_logging()
