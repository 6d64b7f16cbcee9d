"""Logging and telemetry for the fallback chat gateway.

Emits structured log records to stdout and appends them to an append-only
log file for local review.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("gateway")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"


def setup_logging(log_file: str, level: str = "INFO") -> None:
    """Send gateway records at ``level`` and above to stdout and ``log_file``.

    Handlers installed by an earlier call are replaced.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError("Unknown log level: {}".format(level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(numeric_level)
    logger.propagate = False
    fmt = logging.Formatter(_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")

    log_path = Path(log_file)
    os.makedirs(log_path.parent, exist_ok=True)
    for handler in (
        logging.StreamHandler(),
        logging.FileHandler(log_path, mode="a", encoding="utf-8"),
    ):
        handler.setFormatter(fmt)
        logger.addHandler(handler)


def log_request(
    *,
    client_id: str,
    requested_provider: str,
    provider: Optional[str],
    outcome: str,
    model: Optional[str] = None,
    attempts: Optional[int] = None,
    fallback_used: bool = False,
    error: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """Log a single chat request as one JSON line.

    Args:
        client_id: The rate-limit identity of the caller.
        requested_provider: The provider the client asked for (auto, groq, gemini).
        provider: The provider that answered (None if none did).
        outcome: Short outcome label (e.g. "success", "rate_limited", "upstream_error").
        model: The concrete model id that answered.
        attempts: Chat calls made to the answering provider (2 after a retry).
        fallback_used: Whether auto mode fell back to the secondary provider.
        error: Error message if the request failed.
        request_id: Gateway-assigned request ID.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "client_id": client_id,
        "requested_provider": requested_provider,
        "provider": provider,
        "outcome": outcome,
    }

    if model:
        record["model"] = model

    if attempts:
        record["attempts"] = attempts

    if fallback_used:
        record["fallback_used"] = True

    if error:
        record["error"] = error

    logger.info(json.dumps(record))
