"""Simplified logging configuration"""

import logging
import os
from typing import Optional


class SyncLogger:
    _instance: Optional["SyncLogger"] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._setup_logger()
        return cls._instance

    def _setup_logger(self):
        """Setup console logging plus an optional log file"""
        self._logger = logging.getLogger("tcg_sync")
        self._logger.setLevel(os.getenv("TCG_SYNC_LOG_LEVEL", "INFO").upper())

        # Clear any existing handlers
        self._logger.handlers.clear()

        # Console handler with simple format
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(console_handler)

        log_file = os.getenv("TCG_SYNC_LOG_FILE")
        if log_file:
            self.add_file_handler(log_file)

    def add_file_handler(self, path: str):
        file_handler = logging.FileHandler(path, mode="a")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        self._logger.addHandler(file_handler)

    def set_level(self, level: str):
        self._logger.setLevel(level.upper())

    @property
    def std_logger(self) -> logging.Logger:
        return self._logger

    def info(self, message: str):
        self._logger.info(message)

    def error(self, message: str):
        self._logger.error(message)

    def warning(self, message: str):
        self._logger.warning(message)

    def debug(self, message: str):
        self._logger.debug(message)


# Singleton instance
logger = SyncLogger()
