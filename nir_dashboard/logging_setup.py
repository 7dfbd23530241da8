import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a single stdout handler to the package logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    logger = logging.getLogger("nir_dashboard")
    logger.setLevel(level)
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        _configured = True
    return logger
