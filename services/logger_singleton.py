import logging
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone
from os import environ as env
from dotenv import find_dotenv, load_dotenv

# LOGGING_ENV may live in .env; loggers are created at import time
if env.get("USE_DOTENV", "true").lower() == "true":
    ENV_FILE = find_dotenv()
    if ENV_FILE:
        load_dotenv(ENV_FILE)


def _log_level() -> int:
    env_setting = env.get('LOGGING_ENV', 'development').lower()
    return logging.WARNING if env_setting == 'production' else logging.INFO


class LoggerSingleton:
    _instance = None
    _loggers = {}  # Dictionary to store named loggers
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(LoggerSingleton, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._configure_base_logging()
            self._configure_third_party_loggers()
            self._initialized = True

    def _configure_base_logging(self):
        """Configure base logging settings"""
        logging_to_file = env.get('LoggingtoFile', 'false').lower() == 'true'

        root_logger = logging.getLogger()
        log_level = _log_level()
        root_logger.setLevel(log_level)

        if not root_logger.handlers:  # Only configure if not already configured
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)

            if logging_to_file:
                try:
                    log_dir = 'logs'
                    os.makedirs(log_dir, exist_ok=True)
                    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
                    log_file = os.path.join(log_dir, f'app_{timestamp}.log')

                    file_handler = RotatingFileHandler(
                        log_file,
                        maxBytes=30485760,  # 30MB
                        backupCount=5
                    )
                    file_handler.setLevel(log_level)
                    file_handler.setFormatter(formatter)
                    root_logger.addHandler(file_handler)
                except OSError as e:
                    root_logger.warning(f"Failed to initialize file logging: {e}")
        else:
            for handler in root_logger.handlers:
                handler.setLevel(log_level)

    def _configure_third_party_loggers(self):
        """Configure logging levels for third-party libraries"""
        third_party_loggers = [
            'httpx',
            'httpcore',
            'anthropic',
            'openai',
            'pymongo',
            'pymongo.topology',
            'pymongo.connection',
            'pymongo.serverSelection',
            'pymongo.command',
            'redis',
            'neo4j',
            'neo4j.io',
            'neo4j.pool',
            'neo4j.bolt',
            'asyncio',
            'uvicorn.access',
        ]

        level = _log_level()

        for logger_name in third_party_loggers:
            logger = logging.getLogger(logger_name)
            logger.setLevel(level)

            # Remove any existing handlers that might have DEBUG level
            for handler in logger.handlers[:]:
                if handler.level < level:
                    logger.removeHandler(handler)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger instance with the singleton configuration"""
        if cls._instance is None:
            cls()

        if name not in cls._loggers:
            logger = logging.getLogger(name)
            logger.setLevel(_log_level())
            logger.propagate = True
            cls._loggers[name] = logger

        return cls._loggers[name]
