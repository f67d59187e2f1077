from __future__ import annotations

import logging
import sys
from typing import Optional

from supportbot.core.config import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install one stream handler on the package logger. Safe to call repeatedly."""
    global _configured
    root = logging.getLogger("supportbot")
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
