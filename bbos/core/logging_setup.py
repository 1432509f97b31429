"""
Root logger configuration
"""
import logging
import logging.handlers
from pathlib import Path

DEFAULT_FMT = "%(asctime)s - %(levelname)-5s - %(name)s - %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", file_name: str = "") -> None:
    if getattr(setup_logging, "_configured", False):
        return  # prevent double-config

    root = logging.getLogger()
    root.setLevel(level.upper())

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter(DEFAULT_FMT, datefmt=DATE_FMT))
    root.addHandler(ch)

    # Rotating file
    if file_name:
        Path(file_name).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            file_name, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        fh.setFormatter(logging.Formatter(DEFAULT_FMT, datefmt=DATE_FMT))
        root.addHandler(fh)

    setup_logging._configured = True
