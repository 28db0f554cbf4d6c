from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_handler: logging.Handler | None = None


def configure_logging(level: str | None = None) -> None:
    # Install one stream handler on the root logger; repeated calls only adjust the level.
    global _handler
    if level is None:
        from pushworker.core.config import get_settings

        level = get_settings().log_level
    root = logging.getLogger()
    if _handler is None or _handler not in root.handlers:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(_handler)
    root.setLevel(level.upper())
    # httpx logs every request URL at INFO, which includes the project id.
    logging.getLogger("httpx").setLevel(logging.WARNING)
