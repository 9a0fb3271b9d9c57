"""
Shared helpers.
"""
import logging
import sys

from app.core import config


_FORMAT = "%(levelname)s : %(asctime)s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    The root "app" handler is installed once; every other logger propagates
    to it, so calling this from any module is cheap.
    """
    root = logging.getLogger("app")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(config.LOG_LEVEL)

    if name == "__main__" or not name.startswith("app"):
        name = f"app.{name}"
    return logging.getLogger(name)
