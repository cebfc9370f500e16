from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOG_PATH = "/var/log/blunux-installer.log"
FALLBACK_LOG_NAME = "blunux-installer.log"


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure root logging once per process.

    The live ISO may not allow writing to /var/log; in that case the log goes
    to ``./blunux-installer.log`` instead. Returns the file path in use.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    if getattr(logger, "_blunux_configured", False):
        return getattr(logger, "_blunux_log_path", log_path)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []
    file_handler: Optional[logging.Handler] = None
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        chosen_path = log_path
    except OSError:
        chosen_path = str(Path.cwd() / FALLBACK_LOG_NAME)
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        # progress lines go to stdout; keep the console to warnings unless debugging
        console.setLevel(level if level <= logging.DEBUG else logging.WARNING)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_blunux_configured", True)
    setattr(logger, "_blunux_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
