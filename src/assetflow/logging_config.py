"""Process-wide logging setup for the API and CLI."""

import logging

from assetflow.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: int | None = None) -> None:
    """Configure root logging once; DEBUG when settings.debug is on."""
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)
