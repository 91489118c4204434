from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple

DEFAULT_LOG_PATH = "logs/kiosk-build.log"
FALLBACK_LOG_NAME = "kiosk-build.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Chatty below WARNING even when we want command output at DEBUG.
NOISY_LOGGERS = ("urllib3",)


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    *,
    verbose: bool = False,
    also_console: bool = True,
) -> str:
    """Configure root logging for a build run.

    The log file is the build transcript: every command run_cmd executes is
    logged at INFO, its captured output at DEBUG (verbose). If the requested
    path is not writable we fall back to a file in the working directory.

    Calling it again only adjusts the level. Returns the file path in use.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    if getattr(root, "_kiosk_configured", False):
        return getattr(root, "_kiosk_log_path", log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    file_handler, chosen_path = _open_log_file(log_path)
    handlers: list[logging.Handler] = [file_handler]
    if also_console:
        handlers.append(logging.StreamHandler())

    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)

    setattr(root, "_kiosk_configured", True)
    setattr(root, "_kiosk_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s, verbose=%s)", log_path, chosen_path, verbose
    )
    return chosen_path
