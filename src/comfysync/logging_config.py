"""Logging setup.

Console output goes through rich. Optionally, a JSON Lines file receives every
record together with the structured diagnostic fields that soft failures attach
via ``extra=`` (operation, classification, preview, redirect uri, ...).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger
from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "comfysync"


class JSONLFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record.

    Fields passed through ``extra=`` become top-level keys, so a soft failure's
    diagnostic (operation, classification, preview, ...) stays queryable.
    """

    def __init__(self) -> None:
        super().__init__("%(levelname)s %(name)s %(message)s", timestamp=True)

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = log_record.pop("levelname", record.levelname)
        log_record["logger"] = log_record.pop("name", record.name)


def setup_logging(
    level: str = "INFO",
    jsonl_file: Optional[str] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Configure the package logger. Safe to call more than once."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        rich_handler = RichHandler(
            console=console or Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        logger.addHandler(rich_handler)

    if jsonl_file:
        path = Path(jsonl_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        already = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path.resolve()
            for h in logger.handlers
        )
        if not already:
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JSONLFormatter())
            logger.addHandler(file_handler)

    return logger
