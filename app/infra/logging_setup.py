from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class _ThirdPartyNoiseFilter(logging.Filter):
    """
    Keep app.* and uvicorn server logs at the configured level; everything
    else (access logs, SQLAlchemy, httpx) only at WARNING and above.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "app" or record.name.startswith("app."):
            return True
        if record.name.startswith("uvicorn.error"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str | int | None = None) -> None:
    """Configure the root logger once, before the first log line is emitted."""
    resolved = level if level is not None else LOG_LEVEL
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    root = logging.getLogger()
    root.setLevel(resolved)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(fmt)
    console.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(console)

    logging.captureWarnings(True)
