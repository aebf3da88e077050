"""
Structured Logging - structlog rendered through stdlib handlers.

Components log through get_logger("<component>") and emit key/value events.
Inside a decision cycle the (symbol, timeframe, window_end) triple is bound
as context variables, so every event a strategy, the ensemble or the fusion
step emits for that cycle carries it without being passed around.
"""

from __future__ import annotations

import logging
import math
import sys
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import structlog

MAIN_LOG = "fusion_core.log"
ERROR_LOG = "errors.log"

# Loggers that are chatty at INFO and carry nothing a decision audit needs.
_QUIET_LOGGERS = ("asyncio", "concurrent.futures")

_CREDENTIAL_MARKERS = ("api_key", "secret", "password", "token", "authorization")

# Floats in events are scores and confidences; six places is plenty to audit.
_FLOAT_PLACES = 6


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------

def _redact(value: Any) -> str:
    text = str(value)
    if len(text) <= 8:
        return "****"
    return f"{text[:4]}****{text[-4:]}"


def _mask_credentials(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Redact predictor credentials that leak into event context."""
    for key, value in event_dict.items():
        if key != "event" and any(m in key.lower() for m in _CREDENTIAL_MARKERS):
            event_dict[key] = _redact(value)
    return event_dict


def _round_floats(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, float) and math.isfinite(value):
            event_dict[key] = round(value, _FLOAT_PLACES)
    return event_dict


# ---------------------------------------------------------------------------
# Cycle context and timing
# ---------------------------------------------------------------------------

@contextmanager
def cycle_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every event logged in the current task until exit."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


class CycleTimer:
    """
    Times a block and logs one event when it ends.

    Success logs ``"<operation> completed"`` at DEBUG, or at WARNING once the
    block took longer than ``slow_ms``. A failure logs ``"<operation> failed"``
    at ERROR and lets the exception propagate. Cancellation is not a failure
    and logs nothing.
    """

    def __init__(self, logger: Any, operation: str, slow_ms: float = 1000.0, **fields: Any):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.fields = fields
        self.elapsed_ms: float = 0.0
        self._started: Optional[float] = None

    def __enter__(self) -> "CycleTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        duration = round(self.elapsed_ms, 2)
        if exc_type is None:
            log = self.logger.warning if self.elapsed_ms > self.slow_ms else self.logger.debug
            log(f"{self.operation} completed", duration_ms=duration, **self.fields)
        elif issubclass(exc_type, Exception):
            self.logger.error(
                f"{self.operation} failed",
                duration_ms=duration, error=repr(exc_val), **self.fields,
            )
        return False


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

def _rotating(path: Path, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = RotatingFileHandler(
        path, encoding="utf-8", maxBytes=max_mb * 1024 * 1024, backupCount=backups,
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    json_output: bool = False,
) -> None:
    """
    Route structlog events to the console and two rotating files.

    The console goes to stderr because the CLI writes decisions to stdout.
    ``json_output`` switches every handler to one JSON object per line,
    which is what an audit pipeline ingests.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    handlers = [
        _rotating(log_path / MAIN_LOG, level, max_mb=20, backups=5),
        _rotating(log_path / ERROR_LOG, logging.ERROR, max_mb=5, backups=3),
        console,
    ]

    root = logging.getLogger()
    root.setLevel(level)
    # Calling setup twice must not leak file descriptors or duplicate lines.
    for old in root.handlers[:]:
        old.close()
        root.removeHandler(old)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _mask_credentials,
        _round_floats,
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event=36)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=pre_chain,
    )
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "fusion_core") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
