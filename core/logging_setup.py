from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional


ENV_DEBUG = "COLORSPLASH_DEBUG"
ENV_DEBUG_LOG = "COLORSPLASH_DEBUG_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("core")
_EXCEPTION_HOOK_INSTALLED = False


def setup_logging() -> Optional[Path]:
    """
    File logging at DEBUG when COLORSPLASH_DEBUG is set, otherwise only a
    NullHandler. Returns the log path when file logging is enabled.
    """
    global _EXCEPTION_HOOK_INSTALLED
    if not os.environ.get(ENV_DEBUG):
        logger.addHandler(logging.NullHandler())
        return None

    log_path = Path(os.environ.get(ENV_DEBUG_LOG, "colorsplash_debug.log"))
    if not log_path.is_absolute():
        log_path = Path(__file__).resolve().parent.parent / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    # avoid duplicate file handlers when called twice
    root_logger.handlers = [h for h in root_logger.handlers if not isinstance(h, logging.FileHandler)]
    root_logger.addHandler(handler)
    root_logger.info("Debug logging enabled at %s", log_path)

    if not _EXCEPTION_HOOK_INSTALLED:
        previous_hook = sys.excepthook

        def _logging_excepthook(exc_type, exc_value, exc_traceback, _prev=previous_hook):
            root_logger.error("Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback))
            _prev(exc_type, exc_value, exc_traceback)

        sys.excepthook = _logging_excepthook
        _EXCEPTION_HOOK_INSTALLED = True
    return log_path
