"""
Logging configuration and utilities for Release Radar
Provides colored console output and file logging with separation between user and technical messages
"""

import functools
import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Optional
import colorama
from colorama import Fore, Back, Style
from tqdm import tqdm

from .helpers import format_duration


# Initialize colorama for Windows compatibility
colorama.init()

FILE_FORMAT = '%(asctime)s | %(name)-30s | %(levelname)-8s | %(funcName)-20s | %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

EXTERNAL_LIBS = [
    'spotipy', 'urllib3', 'requests', 'urllib3.connectionpool',
    'requests.packages.urllib3.connectionpool'
]


class ConsoleMessageFilter(logging.Filter):
    """Filter to allow only user-facing messages to console"""

    def __init__(self, verbose: bool = False):
        super().__init__()
        self.verbose = verbose

    def filter(self, record):
        # Allow all WARNING+ messages
        if record.levelno >= logging.WARNING:
            return True

        # Allow messages explicitly marked for console
        if getattr(record, 'console_output', False):
            return True

        if record.name.endswith('.console') or record.name.endswith('.user'):
            return True

        # Verbose mode shows technical INFO/DEBUG as well
        return self.verbose


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colored output for console"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Back.WHITE + Style.BRIGHT,
    }

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        """
        Initialize colored formatter

        Args:
            fmt: Log format string
            use_colors: Whether to use colored output
        """
        super().__init__()
        self.use_colors = use_colors
        self.fmt = fmt or '%(message)s'

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, coloring the level name and warnings/errors"""
        formatter = logging.Formatter(self.fmt)
        if not self.use_colors or record.levelname not in self.COLORS:
            return formatter.format(record)

        color = self.COLORS[record.levelname]
        record_copy = logging.makeLogRecord(record.__dict__)
        record_copy.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        message = formatter.format(record_copy)
        if record.levelno >= logging.WARNING:
            return f"{color}{message}{Style.RESET_ALL}"
        return message


class ProgressHandler(logging.Handler):
    """Console handler that writes through tqdm so progress bars stay intact"""

    def __init__(self, stream=None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


def parse_size(size_str: str) -> int:
    """
    Parse size string to bytes

    Args:
        size_str: Size string like "10MB", "1GB", "500KB"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the string is not a size
    """
    size_str = size_str.upper().strip()

    multipliers = {
        'B': 1,
        'KB': 1024,
        'MB': 1024 ** 2,
        'GB': 1024 ** 3,
        'TB': 1024 ** 4,
    }

    match = re.match(r'^(\d+(?:\.\d+)?)\s*([KMGT]?B)$', size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    return int(float(number) * multipliers[unit])


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3,
    verbose: bool = False
) -> None:
    """
    Setup application logging configuration with separated console/file output

    Args:
        level: Logging level for the file handler (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None to disable file logging)
        console_output: Enable console logging
        colored_output: Enable colored console output
        max_size: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        verbose: Show technical messages on the console too
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, filter at handler level

    for handler in root_logger.handlers[:]:
        if isinstance(handler, (ProgressHandler, logging.handlers.RotatingFileHandler)):
            handler.close()
            root_logger.removeHandler(handler)

    if console_output:
        console_handler = ProgressHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_handler.addFilter(ConsoleMessageFilter(verbose=verbose))
        console_handler.setFormatter(ColoredFormatter(fmt='%(message)s', use_colors=colored_output))
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # Keep HTTP client chatter out of both outputs
    for lib in EXTERNAL_LIBS:
        lib_logger = logging.getLogger(lib)
        lib_logger.setLevel(logging.CRITICAL)
        lib_logger.propagate = False

    logging.getLogger('release-radar').debug(
        f"Logging initialized - Level: {level}, Console: {console_output}, File: {log_file}"
    )


def get_current_log_file() -> Optional[Path]:
    """
    Get the current log file path from active file handlers

    Returns:
        Path to current log file or None if no file logging
    """
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            return Path(handler.baseFilename)
    return None


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance for a module

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance with console_info and progress_update helpers attached
    """
    logger = logging.getLogger(name)

    def console_info(message: str):
        """Log message that should appear on console for user"""
        logger.info(message, extra={'console_output': True})

    def progress_update(message: str):
        """Log progress update for console"""
        logger.info(message, extra={'console_output': True})

    logger.console_info = console_info
    logger.progress_update = progress_update

    return logger


def configure_from_settings(verbose: bool = False) -> None:
    """Configure logging from application settings"""
    from ..config.settings import get_settings
    settings = get_settings()

    log_file_path = None
    if settings.logging.file:
        if Path(settings.logging.file).is_absolute():
            log_file_path = Path(settings.logging.file)
        else:
            log_file_path = settings.get_data_directory() / settings.logging.file

    setup_logging(
        level="DEBUG" if verbose else settings.logging.level,
        log_file=str(log_file_path) if log_file_path else None,
        console_output=settings.logging.console_output,
        colored_output=settings.logging.colored_output,
        max_size=settings.logging.max_size,
        backup_count=settings.logging.backup_count,
        verbose=verbose
    )


class OperationLogger:
    """Logger for tracking long-running operations with a progress bar"""

    def __init__(self, logger: logging.Logger, operation_name: str, show_progress: bool = True):
        """
        Initialize operation logger

        Args:
            logger: Base logger instance
            operation_name: Name of the operation
            show_progress: Draw a tqdm bar for counted progress
        """
        self.logger = logger
        self.operation_name = operation_name
        self.show_progress = show_progress
        self.start_time: Optional[float] = None
        self.progress_bar = None

    def start(self, message: Optional[str] = None) -> None:
        """Start tracking operation - show to user"""
        self.start_time = time.time()
        self.logger.console_info(message or f"Starting {self.operation_name}")
        self.logger.debug(f"Operation started: {self.operation_name}")

    def progress(self, message: str, current: Optional[int] = None, total: Optional[int] = None) -> None:
        """Log progress, updating the progress bar when counts are known"""
        if current is None or total is None:
            self.logger.debug(f"{self.operation_name}: {message}")
            return

        self.logger.debug(f"{self.operation_name}: {message} ({current}/{total})")

        if not self.show_progress:
            return

        if self.progress_bar is None:
            self.progress_bar = tqdm(
                total=total,
                desc=self.operation_name,
                bar_format="{desc} {n}/{total} {bar} {percentage:3.0f}%",
                ncols=100,
                leave=False
            )
        self.progress_bar.total = total
        self.progress_bar.n = current
        self.progress_bar.set_postfix_str(message[:40], refresh=False)
        self.progress_bar.refresh()

    def close(self) -> None:
        """Close the progress bar if one is open"""
        if self.progress_bar:
            self.progress_bar.close()
            self.progress_bar = None

    def complete(self, message: Optional[str] = None) -> None:
        """Mark operation as complete - close progress bar"""
        self.close()
        self.logger.console_info(message or f"{self.operation_name} completed")
        if self.start_time:
            duration = time.time() - self.start_time
            self.logger.debug(f"Operation completed: {self.operation_name} in {format_duration(duration)}")

    def error(self, message: str, exception: Optional[Exception] = None) -> None:
        """Log operation error - close progress bar first"""
        self.close()
        self.logger.error(f"{self.operation_name} failed: {message}")
        if exception:
            self.logger.debug(f"Operation failed: {self.operation_name}", exc_info=exception)

    def warning(self, message: str) -> None:
        self.logger.warning(f"{self.operation_name}: {message}")


def create_operation_logger(name: str, operation: str, show_progress: bool = True) -> OperationLogger:
    """
    Create operation logger for tracking long-running tasks

    Args:
        name: Logger name
        operation: Operation description
        show_progress: Draw a progress bar

    Returns:
        OperationLogger instance
    """
    return OperationLogger(get_logger(name), operation, show_progress=show_progress)


def log_performance(func):
    """Decorator to log function duration at debug level"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            logger.debug(f"{func.__name__} completed in {time.time() - start_time:.3f}s")
            return result
        except Exception as e:
            logger.debug(f"{func.__name__} failed after {time.time() - start_time:.3f}s: {e}")
            raise

    return wrapper
