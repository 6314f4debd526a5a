"""
Logging setup and configuration for People Sync.

This module provides centralized logging configuration with daily file
rotation and retention, secret scrubbing, and per-sync-set message prefixes.
"""

import os
import re
import glob
import logging
import logging.handlers
from typing import Dict, Any
from datetime import datetime, timedelta


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'smtp_password', 'token', 'secret', 'client_secret',
        'credential', 'pwd', 'authorization', 'api_key', 'access_token', 'refresh_token'
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        if hasattr(record, 'msg'):
            # Format first so secrets passed as args are scrubbed too
            msg = record.getMessage() if record.args else str(record.msg)

            for keyword in self.SENSITIVE_KEYWORDS:
                # key=value
                msg = re.sub(rf'({keyword}\s*=\s*)[^\s,}}\]]+(\s|,|$)', r'\1****\2', msg, flags=re.IGNORECASE)
                # "key": "value"
                msg = re.sub(rf'("{keyword}"\s*:\s*")[^"]*(")', r'\1****\2', msg, flags=re.IGNORECASE)
                # "key": value
                msg = re.sub(rf'("{keyword}"\s*:\s*)([^",}}\s]+)(\s*[,}}\]])', r'\1****\3', msg, flags=re.IGNORECASE)

            # Authorization: Bearer/Basic header values
            msg = re.sub(r'(Authorization:\s*(?:Bearer|Basic)\s+)[^\s,}}\]]+(\s|,|$)', r'\1****\2', msg,
                         flags=re.IGNORECASE)

            record.msg = msg
            record.args = None

        return True


class SyncSetLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the sync set name."""

    def process(self, msg, kwargs):
        return f"{self.extra['prefix']}{msg}", kwargs


def sync_set_logger(name: str, width: int = 0, base: str = 'people_sync.sync') -> logging.LoggerAdapter:
    """
    Create a logger whose messages carry a ``[name] `` prefix.

    Args:
        name: Sync set name
        width: Pad the name to this width so prefixes line up
        base: Name of the underlying logger
    """
    prefix = f"[{name:<{width}}] "
    return SyncSetLoggerAdapter(logging.getLogger(base), {'prefix': prefix})


class LoggingManager:
    """
    Manages logging configuration for the People Sync application.

    Provides daily rotated file logging with a retention policy, and
    container-friendly console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config if config else {}

        # Extract configuration values
        log_level = logging_config.get('level', 'INFO').upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = logging_config.get('console_level', 'INFO').upper()

        self._ensure_log_directory()

        # Configure root logger, replacing any existing handlers
        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        # Set up file handler with daily rotation
        file_handler = self._create_file_handler()
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        # Set up console handler if enabled
        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.INFO))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        # Clean up old log files
        self._cleanup_old_logs()

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def _ensure_log_directory(self) -> None:
        """Ensure the log directory exists."""
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                # Logging is not configured yet, so report on stdout
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self) -> logging.Handler:
        """Create a handler writing app.log, rotated at midnight."""
        log_file = os.path.join(self.log_dir, 'app.log')

        handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_file,
            when='midnight',
            interval=1,
            backupCount=self.retention_days,
            encoding='utf-8'
        )
        # app.log.2024-01-31
        handler.suffix = '%Y-%m-%d'
        return handler

    def _cleanup_old_logs(self) -> None:
        """Clean up log files older than retention period."""
        if not self.log_dir or self.retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        for log_file in glob.glob(os.path.join(self.log_dir, 'app.log*')):
            # Never remove the active log
            if log_file.endswith('app.log'):
                continue
            try:
                file_time = datetime.fromtimestamp(os.path.getmtime(log_file))
                if file_time < cutoff_date:
                    os.remove(log_file)
                    print(f"Removed old log file: {log_file}")
            except (OSError, ValueError) as e:
                print(f"Warning: Could not remove old log file {log_file}: {e}")


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)
