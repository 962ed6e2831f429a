"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "guidebot.chat.audit"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class MinimalJSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string.

    Dict messages (the telemetry events) are merged into the top level so each
    line is a flat object.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            text = record.getMessage()
            if text:
                payload["message"] = text

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def _dict_config(level: str, audit_file: Path) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "json"},
            "chat_audit": {
                "class": "logging.FileHandler",
                "filename": str(audit_file),
                "encoding": "utf-8",
                "formatter": "json",
                "delay": True,
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["chat_audit"], "propagate": False},
        },
    }


def configure_logging(level: str | None = None, log_dir: str | Path | None = None) -> None:
    """Install JSON console logging plus the chat audit file.

    Chat audit records (query plus the ids of the reports used as context) are
    appended to ``<log_dir>/chat_audit.log`` instead of the console. ``LOG_LEVEL``
    and ``LOG_DIR`` supply the defaults.
    """

    resolved_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    audit_dir = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    audit_dir.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(_dict_config(resolved_level, audit_dir / "chat_audit.log"))
