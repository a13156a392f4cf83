from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(log_path: str, log_level: str = "ERROR") -> logging.Logger:
    """Send the ``ektask`` logger to a rotating file.

    Nothing goes to the terminal: the selection overlay owns the screen.
    """
    logger = logging.getLogger("ektask")
    # Always reset handlers so --log-level reliably controls file output.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    directory = os.path.dirname(os.path.abspath(log_path))
    if directory and not os.path.isdir(directory):
        os.makedirs(directory, exist_ok=True)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding="utf-8")
    lvl = getattr(logging, str(log_level).upper(), None)
    if not isinstance(lvl, int):
        lvl = logging.ERROR
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(fh)
    return logger
