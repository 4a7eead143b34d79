import logging
import os

LOG_FMT = "%(asctime)s │ %(levelname)-7s │ %(message)s"


def setup_logger(name: str = "FXEngine", level=None) -> logging.Logger:
    """Configure root output once and return the engine logger.

    ``level`` falls back to ``FX_LOG_LEVEL`` (name or number), then INFO.
    """
    if level is None:
        level = os.environ.get("FX_LOG_LEVEL", "INFO").strip().upper()
        level = int(level) if level.isdigit() else getattr(logging, level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FMT, datefmt="%H:%M:%S")
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


log = setup_logger()
