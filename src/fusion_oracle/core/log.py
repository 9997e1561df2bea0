"""Structured logging."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from fusion_oracle.core.types import ValidatedOutcome


def setup_logging(
    level: str = "INFO",
    structured: bool = True,
    log_file: Optional[Path] = None,
) -> None:
    """Configure stdlib logging and structlog processors."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if structured:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class OutcomeLogger:
    """Appends validated outcomes to a JSONL file.

    Instances are callable so they can be registered directly as
    outcome listeners.
    """

    def __init__(self, outcomes_file: Path):
        self.outcomes_file = outcomes_file
        self.outcomes_file.parent.mkdir(parents=True, exist_ok=True)
        self._file = None
        self.written = 0

    def __call__(self, outcome: ValidatedOutcome) -> None:
        self.log(outcome.to_dict())

    def log(self, record: dict[str, Any]) -> None:
        if self._file is None:
            self._file = open(self.outcomes_file, "a", encoding="utf-8")

        self._file.write(json.dumps(record, ensure_ascii=False) + "\n")
        self._file.flush()
        self.written += 1

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None
