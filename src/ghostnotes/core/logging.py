"""
Logging configuration.

We use a YAML logging config (`src/ghostnotes/config/logging.yaml`) and then apply
runtime overrides from settings (e.g., `GHOSTNOTES_LOG_LEVEL`).

What shows up at each level:
- INFO: a note being revealed, a proximity notification being issued, relay pushes
  dropped by the rate limiter.
- WARNING: fail-open paths (unreadable or unwritable notified-set records, failed
  relay deliveries). These never interrupt the reveal or notification flow.
- DEBUG: reveal-gate state transitions, handy with `ghostnotes reveal-replay`.

httpx is pinned to WARNING in the YAML so relay calls do not log every request.
The cached config dict is copied before the level override is applied.
"""

from __future__ import annotations

import copy
import logging.config

from ghostnotes.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    settings = get_settings()
    config = copy.deepcopy(get_logging_config())

    level = settings.app.log_level.upper()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)
