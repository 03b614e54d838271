"""Root logger setup shared by the API server and the daily jobs runner.

Records go to stdout and to a log file. The level comes from Settings.log_level
(LOG_LEVEL in the environment), so callers pass it in rather than this module
reading the environment itself.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: str | int) -> int:
    """Turn a level name such as "warning" into its numeric value; unknown names mean INFO."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_server_logging(log_file: str = "logs/gymledger.log", level: str | int = "INFO") -> None:
    """Point the root logger at stdout and log_file.

    Args:
        log_file: File that receives a copy of every record; parent dirs are created
        level: Level name or number, usually settings.log_level
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    log_level = resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Repeated setup must not stack handlers
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
