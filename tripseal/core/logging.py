from __future__ import annotations

import logging

from tripseal.core.config import get_settings


_HANDLER_NAME = "tripseal"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Install one stream handler on the root logger; repeated calls only adjust the level.
    settings = get_settings()
    root = logging.getLogger()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)
    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    # Keep SQL echo out of application logs unless explicitly raised.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
