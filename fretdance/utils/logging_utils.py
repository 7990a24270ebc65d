"""
Logging Utilities

Every module logs through get_logger(__name__), so all records end up under
the `fretdance` logger. setup_logging attaches handlers to that logger only
and leaves the root logger to the host application.

Usage:
    from fretdance.utils.logging_utils import setup_logging, get_logger

    setup_logging(logging.DEBUG, use_tqdm=True)
    logger = get_logger(__name__)
    logger.info("Optimization started")
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union

from tqdm import tqdm


PACKAGE_LOGGER = 'fretdance'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    use_tqdm: bool = False
) -> logging.Logger:
    """
    Configure output for the package logger.

    Calling it again replaces the handlers added by the previous call.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG)
        log_file: Optional file path for logging output
        use_tqdm: Write console records with tqdm.write so progress bars
                  stay intact

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    handlers = [TqdmLoggingHandler() if use_tqdm else logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ProgressLogger:
    """Logs a progress line every `log_interval` units and at the end."""

    def __init__(self, name: str, total: int, log_interval: int = 100, unit: str = 'items'):
        self.logger = get_logger(name)
        self.total = total
        self.unit = unit
        self.log_interval = max(1, log_interval)
        self.current = 0
        self.start_time = None

    def start(self):
        self.start_time = time.perf_counter()

    def update(self, n: int = 1):
        self.current += n
        if self.current % self.log_interval == 0 or self.current == self.total:
            self.logger.info(f"{self.current}/{self.total} {self.unit} ({self.rate():.1f}/s)")

    def finish(self):
        elapsed = time.perf_counter() - self.start_time
        self.logger.debug(f"Finished {self.current} {self.unit} in {elapsed:.3f}s")

    def rate(self) -> float:
        """Units per second since start()."""
        elapsed = time.perf_counter() - self.start_time
        return self.current / elapsed if elapsed > 0 else 0.0


class TqdmLoggingHandler(logging.Handler):
    """Logging handler that writes through tqdm so progress bars are not broken."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record))
        except Exception:
            self.handleError(record)
