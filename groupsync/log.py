from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%d/%b/%Y %H:%M:%S"

_HANDLER_MARK = "_groupsync_handler"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach console (and optional append-mode file) handlers to the root logger once."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    existing = {getattr(h, _HANDLER_MARK) for h in root.handlers if hasattr(h, _HANDLER_MARK)}

    if "console" not in existing:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        setattr(console, _HANDLER_MARK, "console")
        root.addHandler(console)

    if log_file and f"file:{log_file}" not in existing:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            root.warning("Failed to open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            setattr(file_handler, _HANDLER_MARK, f"file:{log_file}")
            root.addHandler(file_handler)

    return root
