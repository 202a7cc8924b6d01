from __future__ import annotations

import logging
from typing import Sequence

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO", *, extra_handlers: Sequence[logging.Handler] | None = None) -> None:
    """Configure root logging with a consistent format.

    Streamlit re-executes the entry script on every interaction, so repeated
    calls only adjust the level once handlers exist.
    """

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level.upper())
    else:
        logging.basicConfig(level=level.upper(), format=DEFAULT_FORMAT)
    if extra_handlers:
        for handler in extra_handlers:
            root.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["configure_logging"]
