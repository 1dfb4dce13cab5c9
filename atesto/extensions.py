"""
Extensões compartilhadas: instância do SQLAlchemy e logging em JSON.

O logging é configurado uma única vez por processo no logger raiz; chamadas
seguintes de create_app() (ex.: um app por teste) só ajustam o nível.
"""

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

# Atributos nativos do LogRecord; o restante veio de extra={...}
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Uma linha JSON por registro, com os campos de extra={...} em 'extra'."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, ensure_ascii=False, default=str)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # Sem este PRAGMA o SQLite ignora ON DELETE CASCADE do histórico
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_extensions(app: Flask) -> None:
    db.init_app(app)
    _init_logging(app)


def _build_handlers(app: Flask, level: int) -> List[logging.Handler]:
    log_dir = app.config["LOG_DIR"]
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "app.log")),
        maxBytes=app.config.get("LOG_MAX_BYTES", 5 * 1024 * 1024),
        backupCount=app.config.get("LOG_BACKUP_COUNT", 3),
        encoding="utf-8",
    )
    handlers: List[logging.Handler] = [file_handler, logging.StreamHandler()]
    formatter = JsonFormatter()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _init_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if getattr(root_logger, "_atesto_json_logging", False):
        for handler in root_logger.handlers:
            handler.setLevel(level)
    else:
        root_logger.handlers.clear()
        for handler in _build_handlers(app, level):
            root_logger.addHandler(handler)
        root_logger._atesto_json_logging = True  # type: ignore[attr-defined]

    # O SQL emitido só interessa em DEBUG explícito do SQLAlchemy
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    app.logger.setLevel(level)

    app.logger.info(
        "Logging JSON inicializado.",
        extra={"component": "logging", "log_dir": app.config["LOG_DIR"], "level": level_name},
    )
