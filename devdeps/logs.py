from __future__ import annotations

import logging
import os
import sys

import colorlog


LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(level: str = "INFO", log_file: str | None = None, color: bool | None = None) -> None:
    """Configure the root logger: colored stderr output, optional plain log file.

    Calling it again only adjusts the level.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if root.handlers:
        return

    if color is None:
        color = sys.stderr.isatty() and not os.environ.get("NO_COLOR")

    handler = logging.StreamHandler(sys.stderr)
    if color:
        handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s[%(levelname).4s]%(reset)s %(cyan)s%(name)s%(reset)s: %(message)s",
                log_colors=LOG_COLORS,
                reset=True,
            )
        )
    else:
        handler.setFormatter(logging.Formatter("[%(levelname).4s] %(name)s: %(message)s"))
    root.addHandler(handler)

    if log_file:
        fh = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        fh.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname).4s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(fh)
        logging.getLogger(__name__).debug("Logging to file: %s", log_file)

    # docker SDK and httpx are chatty at DEBUG
    for noisy in ("urllib3", "docker", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
