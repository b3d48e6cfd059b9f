"""
Centralized logging utilities for ffbatch

Provides consistent logging patterns with configurable debug levels:
- [INFO] for general information
- [WARN] for warnings
- [ERROR] for errors
- [RESULT] for final results
- [DEBUG] for debug information
- [ENCODER] for encoder lifecycle messages
- [VMAF] for VMAF scoring messages
- [SEARCH] for adaptive target search messages
- [DISPATCH] for controller scheduling messages
- [CLEANUP] for cleanup operations

Usage:
    from ffbatch.utils.logging import get_logger, set_debug_mode

    set_debug_mode(True)  # Enable debug messages

    logger = get_logger("dispatcher")
    logger.info("This is an info message")
    logger.debug("This is a debug message")  # Only shows if debug enabled
    logger.dispatch("Started encoder 1234")
"""

import os
from datetime import datetime
from enum import Enum
from typing import Optional

from tqdm import tqdm

# Global logging configuration
_DEBUG_ENABLED = False
_QUIET_MODE = False
_LOG_LEVEL = "INFO"


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


def _init_debug_mode():
    global _DEBUG_ENABLED
    if os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes'):
        _DEBUG_ENABLED = True

_init_debug_mode()


def set_debug_mode(enabled: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


def set_quiet_mode(enabled: bool):
    """Enable or disable quiet mode (suppress INFO and DEBUG messages)"""
    global _QUIET_MODE
    _QUIET_MODE = enabled


def set_log_level(level: str):
    """Set the global log level: DEBUG, INFO, WARN, ERROR"""
    global _LOG_LEVEL
    _LOG_LEVEL = level.upper()


class Logger:
    """Centralized logger with consistent formatting and configurable output"""

    def __init__(self, module_name: str = ""):
        self.module_name = module_name
        self.prefix = f"[{module_name}] " if module_name else ""

    def _should_log(self, level: LogLevel) -> bool:
        """Check if message should be logged based on current settings"""
        if _QUIET_MODE and level in (LogLevel.DEBUG, LogLevel.INFO):
            return False
        if level == LogLevel.DEBUG:
            return _DEBUG_ENABLED

        current_level = LogLevel.__members__.get(_LOG_LEVEL, LogLevel.INFO)
        return level.value >= current_level.value

    def _emit(self, tag: str, message: str):
        # tqdm.write keeps active progress bars intact
        tqdm.write(f"[{tag}] {self.prefix}{message}")

    def _log(self, level: LogLevel, message: str, tag: Optional[str] = None):
        if not self._should_log(level):
            return
        self._emit(tag or level.name, message)

    def debug(self, message: str):
        """Log debug message (only if debug mode enabled)"""
        if _DEBUG_ENABLED:
            self._log(LogLevel.DEBUG, message)

    def info(self, message: str):
        self._log(LogLevel.INFO, message)

    def warn(self, message: str):
        self._log(LogLevel.WARN, message)

    def error(self, message: str):
        self._log(LogLevel.ERROR, message)

    def result(self, message: str):
        self._log(LogLevel.INFO, message, "RESULT")

    # Domain-specific logging methods
    def encoder(self, message: str):
        """Log encoder lifecycle message"""
        self._log(LogLevel.INFO, message, "ENCODER")

    def vmaf(self, message: str):
        """Log VMAF scoring message"""
        self._log(LogLevel.INFO, message, "VMAF")

    def search(self, message: str):
        """Log adaptive target search message"""
        self._log(LogLevel.INFO, message, "SEARCH")

    def dispatch(self, message: str):
        """Log controller scheduling message"""
        if _DEBUG_ENABLED:
            self._log(LogLevel.DEBUG, message, "DISPATCH")

    def cleanup(self, message: str):
        self._log(LogLevel.INFO, message, "CLEANUP")

    def discovery(self, message: str):
        self._log(LogLevel.INFO, message, "DISCOVERY")

    def cmd(self, message: str):
        """Log command execution message"""
        if _DEBUG_ENABLED:
            self._log(LogLevel.DEBUG, message, "CMD")


def get_logger(module_name: str = "") -> Logger:
    """Get a logger instance for a module"""
    return Logger(module_name)


def format_log_line(tag: str, message: str, when: Optional[datetime] = None) -> str:
    """Format an operator-authored line for an encoder's own log buffer.

    Includes the trailing newline, e.g. ``[14:02:11.042] [Process Encoder] Process exited with code 0``.
    """
    when = when or datetime.now()
    return f"[{when.strftime('%H:%M:%S.%f')[:-3]}] [{tag}] {message}\n"


def create_progress_bar(total: Optional[float] = None, desc: str = "", unit: str = "it",
                        position: Optional[int] = None, leave: bool = True) -> tqdm:
    """Create a progress bar with consistent styling"""
    return tqdm(total=total, desc=desc, unit=unit, position=position, leave=leave)


def print_section_header(title: str, width: int = 90):
    """Print a section header with consistent formatting"""
    tqdm.write("=" * width)
    tqdm.write(title)
    tqdm.write("=" * width)


def print_separator(width: int = 90):
    tqdm.write("-" * width)


def format_duration(seconds: float) -> str:
    """Format duration in seconds to a human-readable string"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_size(bytes_size: int) -> str:
    """Format file size in bytes to human-readable string"""
    size = float(bytes_size)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"
