from __future__ import annotations

import json
import logging
import math
import sys
from datetime import UTC, datetime
from typing import Any, TextIO


def jsonable(value: Any) -> Any:
    # json.dumps would emit bare NaN/Infinity, which is not JSON
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    return value


class JsonlFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            payload.update(jsonable(context))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level {level!r}")
    return value


def get_logger(
    name: str, *, level: int | str = logging.INFO, stream: TextIO | None = None
) -> logging.Logger:
    logger = logging.getLogger(name)
    for handler in logger.handlers:
        if isinstance(handler.formatter, JsonlFormatter):
            return logger

    logger.setLevel(parse_level(level))
    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(JsonlFormatter())
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def set_level(logger: logging.Logger, level: int | str) -> None:
    logger.setLevel(parse_level(level))


def log(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={"context": fields})
