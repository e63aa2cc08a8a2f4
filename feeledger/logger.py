from __future__ import annotations

import logging
import traceback
from datetime import datetime
from pathlib import Path

from .constants import ERROR_LOG_PATH

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


class ErrorLogger:
    def __init__(self, path: Path = ERROR_LOG_PATH):
        self.path = path

    def log_exception(self, exc: BaseException, context: str = "") -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        ts = now_ts()
        with self.path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {context}\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
            f.write("\n")


def configure_logging(path: Path | None = ERROR_LOG_PATH, level: int = logging.INFO) -> None:
    """Send application logs to ``path``, or to stderr when ``path`` is None."""

    if path is None:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(filename=str(path), level=level, format=LOG_FORMAT)


def now_ts() -> str:
    return datetime.now().isoformat(timespec="seconds")
