"""Logging bootstrap for the conversation RAG server.

Modules log through `logging.getLogger(__name__)`; this helper only attaches a
single stream handler to the package logger so entrypoints get readable output.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level="INFO") -> None:
    """Configure the `ragserver` package logger.

    Args:
        level: Level name (`"DEBUG"`, `"INFO"`, ...) or numeric level.

    Side effects:
        Adds one `StreamHandler` on first call; later calls only adjust level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    package_logger = logging.getLogger("ragserver")
    package_logger.setLevel(level)

    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
