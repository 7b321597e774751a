"""
Process-wide logging setup.

Modules only ever do `logger = logging.getLogger(__name__)`; this is the one
place that attaches a handler, called from the app lifespan.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return None
    logging.basicConfig(level=(level or settings.log_level()), format=LOG_FORMAT)
    # httpx logs every request at INFO; the registry client logs its own failures.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
