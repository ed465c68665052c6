from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine", "httpx")


def setup_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(format=LOG_FORMAT, level=level)
    logging.getLogger("taskmind").setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
