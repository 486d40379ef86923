# ==============================================================================
# utils/logging.py - Logging configuration for the NGO platform
# ==============================================================================

"""
Logging setup for the NGO platform.

Services log through ``logging.getLogger(__name__)``; everything under the
``ngo_platform`` logger is routed here. Development gets readable console and
file output, production writes JSON lines so request context attached with
``LoggingContext`` (course ids, the grading user) survives as fields.
"""

import functools
import json
import logging
import logging.config
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

PACKAGE_LOGGER = 'ngo_platform'
PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# LogRecord attributes that are not caller-supplied context
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with ``extra`` context under ``context``"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRIBUTES}
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name on a TTY"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__(PLAIN_FORMAT)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        return f"{color}{formatted}{self.RESET}" if color else formatted


def build_logging_config(environment: str, log_dir: str = 'logs',
                         log_file: str = None, level: str = None) -> Dict[str, Any]:
    """
    dictConfig for the ``ngo_platform`` logger tree.

    Args:
        environment: 'development' or 'production'
        log_dir: Directory for the rotating log files
        log_file: File name; defaults per environment
        level: Level for the package logger; defaults per environment
    """
    production = environment == 'production'
    level = (level or ('INFO' if production else 'DEBUG')).upper()
    log_file = log_file or ('ngo_platform.log' if production else 'ngo_platform_dev.log')
    file_formatter = 'json' if production else 'plain'

    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': level,
            'formatter': 'plain' if production else 'colored',
            'stream': 'ext://sys.stdout',
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': level,
            'formatter': file_formatter,
            'filename': str(Path(log_dir) / log_file),
            'maxBytes': 50 * 1024 * 1024 if production else 10 * 1024 * 1024,
            'backupCount': 10 if production else 3,
            'encoding': 'utf-8',
        },
    }
    if production:
        handlers['error_file'] = dict(handlers['file'], level='ERROR',
                                      filename=str(Path(log_dir) / 'ngo_platform_errors.log'))

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {'format': PLAIN_FORMAT},
            'colored': {'()': ColoredFormatter},
            'json': {'()': JSONFormatter},
        },
        'handlers': handlers,
        'loggers': {
            PACKAGE_LOGGER: {'level': level, 'handlers': list(handlers), 'propagate': False},
            'sqlalchemy.engine': {'level': 'WARNING'},
        },
        'root': {'level': 'WARNING' if production else 'INFO', 'handlers': ['console']},
    }


def _apply(config: Dict[str, Any]) -> None:
    for handler in config['handlers'].values():
        if 'filename' in handler:
            Path(handler['filename']).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(config)


def setup_logging(level: str = None, log_file: str = None, log_dir: str = None,
                  use_json: bool = False) -> None:
    """Explicit setup used when LOG_FILE is configured"""
    environment = 'production' if use_json else 'development'
    _apply(build_logging_config(environment, log_dir or os.getenv('LOG_DIR', 'logs'),
                                log_file=log_file, level=level or os.getenv('LOG_LEVEL', 'INFO')))
    logging.getLogger(PACKAGE_LOGGER).info(f"Logging initialized - Level: {level}, File: {log_file}")


def setup_development_logging():
    _apply(build_logging_config('development', os.getenv('LOG_DIR', 'logs')))


def setup_production_logging():
    _apply(build_logging_config('production', os.getenv('LOG_DIR', 'logs')))


def setup_testing_logging():
    """Errors only, console only"""
    logging.basicConfig(level=logging.ERROR, format='%(levelname)s - %(name)s - %(message)s')
    logging.getLogger('sqlalchemy').setLevel(logging.ERROR)


def auto_configure_logging(environment: str = None):
    """Configure logging based on the ENVIRONMENT variable"""
    env = (environment or os.getenv('ENVIRONMENT', 'development')).lower()

    if env == 'production':
        setup_production_logging()
    elif env == 'testing':
        setup_testing_logging()
    else:
        setup_development_logging()

    logging.getLogger(__name__).info(f"Logging configured for {env} environment")


def log_database_operation(logger: logging.Logger, operation: str):
    """
    Decorator logging the start, end and failure of a service operation.

    Args:
        logger: Logger instance to use
        operation: Description of the database operation
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.debug(f"Starting database operation: {operation}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Database operation failed: {operation} - {e}", exc_info=True)
                raise
            logger.debug(f"Database operation completed: {operation}")
            return result
        return wrapper
    return decorator


class LoggingContext:
    """Context manager yielding a logger adapter that tags records with extra fields"""

    def __init__(self, logger: logging.Logger, **extra_fields):
        self.logger = logger
        self.extra_fields = extra_fields

    def __enter__(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(self.logger, self.extra_fields)

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False
