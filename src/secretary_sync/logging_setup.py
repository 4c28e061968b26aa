# src/secretary_sync/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

# Loggers whose per-write chatter belongs in sync.log, not on the console.
_SYNC_LOGGERS = (
    "secretary_sync.sync.",
    "secretary_sync.storage.sync_markers",
    "secretary_sync.remote.",
)

_LOG_BYTES = 2_000_000
_LOG_BACKUPS = 3


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shows what a CLI user acts on:
    - secretary_sync logs, except the sync path below WARNING
    - Python warnings (captured as 'py.warnings') and third-party logs only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("secretary_sync."):
            if name.startswith(_SYNC_LOGGERS):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


class _SyncOnlyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(_SYNC_LOGGERS)


def _rotating(path: Path, level: int, fmt: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        str(path), maxBytes=_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(
    *,
    log_dir: str | Path = ".local/secretary/logs",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Install three handlers on the root logger:
    - stderr, filtered for interactive use
    - secretary.log with everything at file_level
    - sync.log with the write/replay trail of the sync path only

    Call once at startup. Returns the log directory.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    root.addHandler(_rotating(log_dir / "secretary.log", file_level, fmt))

    sync_handler = _rotating(log_dir / "sync.log", logging.DEBUG, fmt)
    sync_handler.addFilter(_SyncOnlyFilter())
    root.addHandler(sync_handler)

    logging.captureWarnings(True)

    # The OpenAI client logs every request at INFO/DEBUG.
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_dir
