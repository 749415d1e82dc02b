"""
Logging System for the Expression Differentiation Engine

This module provides a centralized logger with verbosity levels. The engine
itself is quiet on the hot path: it only reports configuration problems
(autodiff turned off while building an operator table) and performance
diagnostics (mixed tree/sample precision).
"""

import logging
import sys
from typing import Optional, Dict, Any
from enum import Enum
import time
from datetime import datetime


class LogLevel(Enum):
    """Enumeration of logging levels for the engine"""
    SILENT = 0      # No output
    MINIMAL = 1     # Warnings and configuration problems
    MODERATE = 2    # Table construction and fitting summaries
    DETAILED = 3    # Per-call summaries
    VERBOSE = 4     # All information including debug details


class SymbolicAutodiffLogger:
    """
    Centralized logger with context-aware formatting
    """

    def __init__(self, log_level: LogLevel = LogLevel.MODERATE,
                 log_to_file: bool = False, log_file_path: Optional[str] = None):
        self.log_level = log_level
        self.log_to_file = log_to_file
        self.start_time = time.time()

        self.logger = logging.getLogger('symbolic_autodiff')
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

        if self.log_level != LogLevel.SILENT:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_to_file:
            if log_file_path is None:
                log_file_path = f"symbolic_autodiff_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
            file_handler = logging.FileHandler(log_file_path)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _should_log(self, required_level: LogLevel) -> bool:
        """Check if message should be logged based on current log level"""
        return self.log_level.value >= required_level.value

    def warning(self, message: str):
        """Warnings - shown from minimal level onwards"""
        if self._should_log(LogLevel.MINIMAL):
            self.logger.warning(message)

    def debug(self, message: str):
        """Debug information - only in verbose mode"""
        if self._should_log(LogLevel.VERBOSE):
            self.logger.debug(f"DEBUG: {message}")

    def table_summary(self, n_binary: int, n_unary: int, autodiff: bool):
        """Log the shape of a freshly built operator table"""
        if not self._should_log(LogLevel.MODERATE):
            return
        state = "enabled" if autodiff else "disabled"
        self.logger.info(f"Operator table: {n_binary} binary, {n_unary} unary, autodiff {state}")

    def fit_summary(self, results: Dict[str, Any]):
        """Log a constant-fitting summary"""
        if not self._should_log(LogLevel.DETAILED):
            return
        elapsed = time.time() - self.start_time
        for key, value in results.items():
            if isinstance(value, float):
                self.logger.info(f"{key:.<30} {value:.6f}")
            else:
                self.logger.info(f"{key:.<30} {value}")
        self.logger.info(f"{'elapsed':.<30} {elapsed:.1f}s")


_global_logger: Optional[SymbolicAutodiffLogger] = None


def get_logger() -> SymbolicAutodiffLogger:
    """Get or create the global logger instance"""
    global _global_logger
    if _global_logger is None:
        _global_logger = SymbolicAutodiffLogger()
    return _global_logger


def set_log_level(level: LogLevel):
    """Set the global logging level"""
    global _global_logger
    if _global_logger is None:
        _global_logger = SymbolicAutodiffLogger(log_level=level)
    else:
        _global_logger.log_level = level


def configure_logging(log_level: LogLevel = LogLevel.MODERATE,
                      log_to_file: bool = False,
                      log_file_path: Optional[str] = None) -> SymbolicAutodiffLogger:
    """Configure the global logging system"""
    global _global_logger
    _global_logger = SymbolicAutodiffLogger(
        log_level=log_level,
        log_to_file=log_to_file,
        log_file_path=log_file_path
    )
    return _global_logger


def log_warning(message: str):
    """Log warning message"""
    get_logger().warning(message)


def log_debug(message: str):
    """Log debug message"""
    get_logger().debug(message)
