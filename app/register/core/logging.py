from __future__ import annotations

import json
import logging


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def log_json(logger: logging.Logger, payload: dict, level: int = logging.INFO) -> None:
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
