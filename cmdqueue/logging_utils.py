import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None):
    logger = logging.getLogger('cmdqueue')

    if logger.handlers:
        if level:
            logger.setLevel(getattr(logging, level.upper()))
        return logger

    logger.setLevel(getattr(logging, (level or 'INFO').upper()))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # stdout belongs to the commands being run
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir) / 'cmdqueue.log'
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=10*1024*1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def verbosity_level(verbose: bool) -> str:
    return 'DEBUG' if verbose else 'ERROR'
