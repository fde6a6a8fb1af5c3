"""Configuration helpers for backend runtime."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass


LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


@dataclass(frozen=True)
class BackendSettings:
    host: str
    port: int
    idle_grace_seconds: float
    sweep_interval_seconds: float
    subscriber_queue_size: int
    log_level: str


def load_settings() -> BackendSettings:
    return BackendSettings(
        host=os.getenv("ESTIMATIONS_HOST", "127.0.0.1"),
        port=int(os.getenv("ESTIMATIONS_PORT", "8000")),
        idle_grace_seconds=float(os.getenv("ESTIMATIONS_IDLE_GRACE_SECONDS", "300")),
        sweep_interval_seconds=float(os.getenv("ESTIMATIONS_SWEEP_INTERVAL_SECONDS", "60")),
        subscriber_queue_size=int(os.getenv("ESTIMATIONS_SUBSCRIBER_QUEUE_SIZE", "100")),
        log_level=os.getenv("ESTIMATIONS_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: int | str = "INFO") -> logging.Logger:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger("asyncio").setLevel("WARNING")
    return root
