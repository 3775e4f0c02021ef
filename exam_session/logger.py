"""
Logging for the session engine.

Handlers live on the ``exam_session`` logger only; every module logger is a
child of it, so one configuration covers the whole package.
"""

import logging
import sys

from exam_session.config import settings

ROOT_NAME = "exam_session"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_NAME)
    if root.handlers:
        return root

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root.setLevel(log_level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return root


def setup_logger(name: str) -> logging.Logger:
    """
    Return a logger under the package root, configuring the root on first use.

    Args:
        name: Logger name (usually __name__). Names outside the package are
            nested under it.
    """
    root = _configure_root()
    if name == ROOT_NAME or name.startswith(ROOT_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)
