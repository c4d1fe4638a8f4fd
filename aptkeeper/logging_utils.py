from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOG_PATH = "/var/log/aptkeeper.log"


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure root logging for the aptkeeper CLI.

    Everything goes to a file. The CLI passes also_console only under -v,
    so a normal run keeps stdout for the report and stderr for ERROR lines.
    An unwritable log_path (unprivileged runs and /var/log) falls back to
    ./aptkeeper.log.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    if getattr(logger, "_aptkeeper_configured", False):
        return getattr(logger, "_aptkeeper_log_path", log_path)

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
        chosen_path = str(Path.cwd() / "aptkeeper.log")
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_aptkeeper_configured", True)
    setattr(logger, "_aptkeeper_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
