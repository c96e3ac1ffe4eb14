import logging
import sys

import structlog

from richlink_api.configurations.config import settings

# Per-request chatter from the fetch clients and the Mongo driver
QUIET_LOGGERS = ("httpx", "httpcore", "pymongo")


def _console_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.ExtraAdder(),
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), pad_level=False),
        ],
    )


def _use_cloud_logging() -> bool:
    return settings.env == "prod" and bool(settings.gcp_project_id)


def setup_logging(level: str = settings.log_level) -> None:
    """Send stdlib logging to Cloud Logging in prod and to a structlog console elsewhere."""
    if _use_cloud_logging():
        import google.cloud.logging

        client = google.cloud.logging.Client(project=settings.gcp_project_id)
        client.setup_logging(log_level=logging.getLevelName(level.upper()))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_console_formatter())

        root_logger = logging.getLogger()
        root_logger.handlers = [handler]
        root_logger.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
