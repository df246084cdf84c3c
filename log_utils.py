import logging
from logging.handlers import RotatingFileHandler
import os

# Relative to the working directory unless POOL_ENGINE_LOG_FILE points
# elsewhere, so local runs and tests never need a pre-provisioned data volume.
LOG_FILE = os.getenv("POOL_ENGINE_LOG_FILE", os.path.join("logs", "pool_engine.log"))


def setup_logger(name: str) -> logging.Logger:
    """Configure and return a module-level logger.

    Logs are written to both console and a rotating file to persist
    information for debugging. Subsequent calls with the same name
    return the already configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    try:
        directory = os.path.dirname(LOG_FILE)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Rotating file handler keeps last 5 logs of ~1MB each
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5)
    except OSError as exc:
        logger.warning("File logging disabled for %s: %s", LOG_FILE, exc)
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger


def read_logs(tail: int = 100) -> str:
    """Return the last ``tail`` lines from the log file.

    If the log file does not exist, an empty string is returned.  A
    non-positive ``tail`` returns the whole file.
    """
    if not os.path.exists(LOG_FILE):
        return ""
    with open(LOG_FILE, "r") as f:
        lines = f.readlines()
    if tail <= 0:
        return "".join(lines)
    return "".join(lines[-tail:])
