import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from app.core.context import get_actor_id, get_request_id
from app.core.settings import settings


class RequestContextFilter(logging.Filter):
    """Inject request/actor ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.actor_id = get_actor_id()
        record.request_id = get_request_id()
        return True


# Submitted or stored credentials; never written to any stream.
REDACTED_EVENT_KEYS = frozenset({"pin", "master_pin", "old_pin", "new_pin", "code", "pin_hash", "code_hash"})


class CredentialRedactionFilter(logging.Filter):
    """Drop credential fields from ``extra={"event": {...}}`` payloads."""

    def filter(self, record: logging.LogRecord) -> bool:
        event = getattr(record, "event", None)
        if isinstance(event, dict) and REDACTED_EVENT_KEYS & event.keys():
            record.event = {key: value for key, value in event.items() if key not in REDACTED_EVENT_KEYS}
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter; extra fields passed via ``extra={"event": {...}}`` are kept."""

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "actor_id": getattr(record, "actor_id", "-"),
            "request_id": getattr(record, "request_id", "-"),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
                "redact_credentials": {"()": CredentialRedactionFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "transactional"},
                "audit_json": {"()": JsonFormatter, "stream_label": "audit"},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "json",
                    "filters": ["request_context", "redact_credentials"],
                    "stream": "ext://sys.stdout",
                },
                "audit": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "audit_json",
                    "filters": ["request_context", "redact_credentials"],
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level, "propagate": False},
                "app.audit": {"handlers": ["audit"], "level": log_level, "propagate": False},
                # Bound parameters carry credential hashes; no statement echo.
                "sqlalchemy.engine": {"handlers": ["default"], "level": "WARNING", "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.error": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s level=%s",
        settings.environment,
        log_level,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger("app.audit")
