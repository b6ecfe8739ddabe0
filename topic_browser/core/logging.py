"""Process-wide logging setup for the server and the CLI."""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler and keep kafka-python's own logger quiet."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("topic_browser").setLevel(level)
    logging.getLogger("kafka").setLevel(logging.WARNING)
