import logging
import logging.handlers
import traceback
from datetime import datetime
from pathlib import Path

from picking_replenishment.config import config


class Logger:
    """Logging manager for the Picking Replenishment Scheduler."""

    _instance = None
    _loggers = {}

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the logger if not already initialized."""
        if self._initialized:
            return

        self._log_config = config.log_config
        directory = self._log_config['directory']
        self._log_dir = Path(directory) if directory else None

        # An empty directory setting disables file output
        if self._log_dir is not None and not self._log_dir.exists():
            self._log_dir.mkdir(parents=True)

        self._app_logger = self.get_logger('app')

        self._initialized = True

    @property
    def level(self):
        level_name = self._log_config['level'].upper()
        return getattr(logging, level_name, logging.INFO)

    def get_logger(self, name):
        """Get a logger with the specified name.

        Args:
            name: Name of the logger

        Returns:
            Configured logger instance
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(self.level)

        # Remove existing handlers to prevent duplicates
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        formatter = logging.Formatter(self._log_config['format'])

        if self._log_dir is not None:
            file_handler = logging.handlers.RotatingFileHandler(
                self._log_dir / f"{name}.log",
                maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
                backupCount=self._log_config['backup_count']
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        if self._log_config['console_output']:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

        # Prevent propagation to root logger to avoid duplicates
        logger.propagate = False

        self._loggers[name] = logger
        return logger

    def log_exception(self, logger_name, exception, message=None):
        """Log an exception with stack trace.

        Args:
            logger_name: Logger name
            exception: Exception object
            message: Optional message to include
        """
        logger = self.get_logger(logger_name)

        if message:
            logger.error(f"{message}: {str(exception)}")
        else:
            logger.error(str(exception))

        logger.error(traceback.format_exc())

    @property
    def app_logger(self):
        """Get the application logger."""
        return self._app_logger

    def cycle_start_log(self, cycle_name, additional_info=None):
        """Log the start of a scheduler cycle.

        Args:
            cycle_name: Name of the cycle (e.g. ``tick`` or ``sync 7/01``)
            additional_info: Optional additional information

        Returns:
            Dictionary handed back to cycle_end_log
        """
        scheduler_logger = self.get_logger('scheduler')
        start_time = datetime.now()

        log_info = {
            'cycle_name': cycle_name,
            'start_time': start_time,
            'additional_info': additional_info
        }

        scheduler_logger.debug(f"Starting cycle: {cycle_name}")
        if additional_info:
            scheduler_logger.debug(f"Cycle info: {additional_info}")

        return log_info

    def cycle_end_log(self, log_info, success=True, result_info=None):
        """Log the end of a scheduler cycle.

        Args:
            log_info: Dictionary returned by cycle_start_log
            success: Whether the cycle succeeded
            result_info: Optional result information

        Returns:
            Cycle duration as a timedelta
        """
        scheduler_logger = self.get_logger('scheduler')
        end_time = datetime.now()

        cycle_name = log_info.get('cycle_name', 'Unknown')
        duration = end_time - log_info.get('start_time', end_time)

        if success:
            scheduler_logger.debug(f"Completed cycle: {cycle_name} in {duration}")
        else:
            scheduler_logger.error(f"Failed cycle: {cycle_name} after {duration}")

        if result_info:
            scheduler_logger.debug(f"Cycle results: {result_info}")

        return duration

# Global logger instance
logger = Logger()

def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)

def log_exception(logger_name, exception, message=None):
    """Log an exception with stack trace."""
    logger.log_exception(logger_name, exception, message)
