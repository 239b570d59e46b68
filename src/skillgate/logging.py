from __future__ import annotations

import logging
import os
from typing import Optional

from rich.logging import RichHandler

_DEF_FMT = "%(message)s"


def setup_logging(level: str | None = None) -> None:
    log_level = (level or os.getenv("SKILLGATE_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format=_DEF_FMT,
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name and not name.startswith("skillgate"):
        name = f"skillgate.{name}"
    return logging.getLogger(name or "skillgate")
