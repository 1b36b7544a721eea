# =======================================================================================
# vehicle_gate/logger.py - Logging Setup
# =======================================================================================
import logging
import logging.handlers
import pathlib
from typing import Optional

from .config import Config, config

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] %(message)s"
RETENTION_DAYS = 30


def setup_logging(settings: Config = config, root: Optional[logging.Logger] = None) -> logging.Logger:
    """Console logging, plus a daily rotated file per instance when LOG_DIR is set."""
    logger = root or logging.getLogger()
    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_DIR:
        log_path = pathlib.Path(settings.LOG_DIR) / settings.INSTANCE_NAME / "agent.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            str(log_path),
            when="midnight",
            interval=1,
            backupCount=RETENTION_DAYS,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logger
