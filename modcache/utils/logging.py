"""Unified logging system for modcache.

Provides colored console output and optional file logging. Cache and
download code report every fail-soft path through this logger, so the
level is the main knob for seeing why a cache lookup turned into a miss.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional


LOGGER_NAME = 'modcache'


# ANSI color codes for terminal output
class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    RED = '\033[31m'
    BRIGHT_BLACK = '\033[90m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to log levels in console output."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BRIGHT_BLACK,
        logging.INFO: Colors.BRIGHT_BLUE,
        logging.WARNING: Colors.BRIGHT_YELLOW,
        logging.ERROR: Colors.BRIGHT_RED,
        logging.CRITICAL: Colors.RED + Colors.BOLD,
    }

    def __init__(self, fmt: str = None, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        """Check if the terminal supports color output."""
        if not hasattr(sys.stdout, 'isatty') or not sys.stdout.isatty():
            return False
        # Legacy Windows consoles do not interpret ANSI escapes
        if sys.platform == 'win32':
            return 'WT_SESSION' in os.environ or 'ANSICON' in os.environ
        return True

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors if enabled."""
        if self.use_colors:
            # Work on a copy so file handlers sharing the record stay uncolored
            record = logging.makeLogRecord(record.__dict__)
            color = self.LEVEL_COLORS.get(record.levelno, '')
            record.levelname = f"{color}{record.levelname}{Colors.RESET}"

        return super().format(record)


def _to_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def setup_logger(
    name: str = LOGGER_NAME,
    level: str | int = logging.INFO,
    log_file: Optional[str | Path] = None,
    console: bool = True,
    use_colors: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """Setup a logger with console and/or file output.

    Args:
        name: Logger name.
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file path for logging to file.
        console: Whether to log to console.
        use_colors: Whether to use colored output in console.
        format_string: Custom format string. If None, uses default.

    Returns:
        logging.Logger: Configured logger instance.

    Example:
        >>> logger = setup_logger('modcache', level='DEBUG')
        >>> logger.debug("resolved cache directory")
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    level = _to_level(level)
    logger.setLevel(level)

    if format_string is None:
        format_string = '[%(name)s] [%(levelname)s] %(message)s'

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)

        if use_colors:
            console_formatter = ColoredFormatter(format_string)
        else:
            console_formatter = logging.Formatter(format_string)

        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def get_logger(
    name: str = LOGGER_NAME,
    level: Optional[str | int] = None,
) -> logging.Logger:
    """Get or create a logger.

    Child loggers (``modcache.cache`` and so on) are returned as-is and
    inherit the handlers of the package logger.

    Args:
        name: Logger name.
        level: Optional logging level. If None, uses existing level or INFO.

    Returns:
        logging.Logger: Logger instance.
    """
    logger = logging.getLogger(name)

    if name != LOGGER_NAME and name.startswith(LOGGER_NAME + '.'):
        if level is not None:
            logger.setLevel(_to_level(level))
        return logger

    if not logger.handlers:
        setup_logger(name, level=level or logging.INFO)
    elif level is not None:
        logger.setLevel(_to_level(level))

    return logger


def set_log_level(level: str | int, name: str = LOGGER_NAME) -> None:
    """Set logging level for existing logger and all its handlers."""
    logger = logging.getLogger(name)
    level = _to_level(level)
    logger.setLevel(level)

    for handler in logger.handlers:
        handler.setLevel(level)


def disable_logging(name: str = LOGGER_NAME) -> None:
    """Disable logging for specified logger."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.CRITICAL + 1)


def enable_logging(name: str = LOGGER_NAME, level: str | int = logging.INFO) -> None:
    """Enable logging for specified logger."""
    set_log_level(level, name)


_default_logger = None


def init_default_logger(
    level: str | int = None,
    log_file: Optional[str | Path] = None,
) -> logging.Logger:
    """Initialize the default modcache logger.

    Args:
        level: Logging level. If None, uses INFO or MODCACHE_LOG_LEVEL env var.
        log_file: Optional log file path.

    Returns:
        logging.Logger: Initialized logger.
    """
    global _default_logger

    if level is None:
        level_str = os.environ.get('MODCACHE_LOG_LEVEL', 'INFO')
        level = getattr(logging, level_str.upper(), logging.INFO)

    _default_logger = setup_logger(
        name=LOGGER_NAME,
        level=level,
        log_file=log_file,
        console=True,
        use_colors=True,
    )

    return _default_logger


# Auto-initialize on import
if _default_logger is None:
    init_default_logger()
