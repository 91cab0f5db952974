from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional

from rich.logging import RichHandler

_PLAIN_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False
    log_file: Optional[str] = None


def setup_logging(cfg: LogConfig) -> None:
    level = getattr(logging, cfg.level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    root.addHandler(_console_handler(level, cfg.no_color))
    if cfg.log_file:
        fh = logging.FileHandler(cfg.log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_PLAIN_FMT))
        root.addHandler(fh)


def _console_handler(level: int, no_color: bool) -> logging.Handler:
    force_no_color = no_color or os.getenv("NO_COLOR") is not None
    if not force_no_color and sys.stderr.isatty():
        handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            show_time=False,
            show_level=True,
            show_path=level <= logging.DEBUG,
        )
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler()
        fmt = _PLAIN_FMT
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
