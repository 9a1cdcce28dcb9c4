"""
Configuração de logging do serviço de tracking.

Usa o logging da biblioteca padrão com um formatter legível por padrão e um
formatter JSON opcional. Os campos passados em ``extra=`` (ex.: ``event``,
``workstation_id``, ``tracking_id``) entram no payload JSON, o que permite
auditar cada decisão do engine sem correlacionar linhas de log.

Uso:
    from app.core.logging import configure_logging

    configure_logging(level="INFO", json_logs=True)
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import date, datetime
from typing import Any, Dict

# atributos padrão de LogRecord; o resto veio de extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class JsonFormatter(logging.Formatter):
    """Formatter JSON mínimo para logs estruturados."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Configura o logger raiz (chamado uma vez no startup ou pelo CLI).
    """
    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )
