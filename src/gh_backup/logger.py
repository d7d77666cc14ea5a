from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT, force=True)
    # urllib3 logs every request at DEBUG, including pagination
    logging.getLogger("urllib3").setLevel(max(numeric, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
