"""Logging configuration for the todosync command line."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


class _ThirdPartyNoiseFilter(logging.Filter):
    """Keep todosync logs; only let other libraries through at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "todosync" or record.name.startswith("todosync."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    level: int | str = logging.WARNING,
    log_file: str | Path | None = None,
) -> None:
    """Configure the root logger.

    Console output goes to stderr through rich so it never mixes with
    command output. When ``log_file`` is given, everything at DEBUG and above
    is written there too.

    Call this once, before the first log record is emitted.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    console = RichHandler(console=Console(stderr=True), show_path=False)
    console.setLevel(level)
    console.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_path), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(fh)

    logging.captureWarnings(True)
