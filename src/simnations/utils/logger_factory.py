"""Factories for application loggers and helper utilities."""

import traceback
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from simnations.configs.env_config import Env
from simnations.utils.logger.config import LogLevel, LoggerConfig
from simnations.utils.logger.handlers.base import BaseLogHandler
from simnations.utils.logger.handlers.error_file import ErrorFileHandler
from simnations.utils.logger.handlers.job_file import JobRotatingFileHandler
from simnations.utils.logger.logger import Logger


def _webhook_handlers(webhook_url: Optional[str]) -> list[BaseLogHandler]:
    if not webhook_url:
        return []
    # Imported lazily: the Discord handler pulls in httpx.
    from simnations.bot.discord import DiscordHandler

    return [DiscordHandler(webhook_url=webhook_url)]


class EnhancedLoggerFactory:
    """Convenience constructors for configured application loggers."""

    @staticmethod
    def create_application_logger(name: str = "simnations",
                                  enable_stdout: bool = False,
                                  log_level: LogLevel = LogLevel.INFO,
                                  config_prefix: Optional[str] = None,
                                  base_dir: str = "logs") -> Logger:
        """Create the main application logger with rotating file handlers.

        :param name: Logger name used in records and filenames.
        :param enable_stdout: Whether to emit log lines to stdout.
        :param log_level: Minimum log level captured by the logger.
        :param config_prefix: Optional prefix for log filenames; ``""`` disables it.
        :param base_dir: Directory receiving the log files.
        :return: Configured :class:`Logger` instance.
        """
        config = LoggerConfig(
            base_level=log_level,
            do_stdout=enable_stdout,
            str_format="%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        )

        prefix = name if config_prefix is None else config_prefix

        handlers: list[BaseLogHandler] = [
            JobRotatingFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
            ErrorFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
        ]
        handlers.extend(_webhook_handlers(Env.LOG_WEBHOOK))

        return Logger(config=config, name=name, handlers=handlers)

    @staticmethod
    def create_job_run_logger(job_id: str,
                              base_dir: str = "logs",
                              prefix: str | None = None,
                              level: LogLevel = LogLevel.INFO,
                              enable_stdout: bool = False) -> Logger:
        """Create a per-pass logger that writes to hourly log files.

        :param job_id: Job identifier used for naming logs.
        :param base_dir: Base directory where logs are stored.
        :param prefix: Optional custom filename prefix.
        :param level: Minimum log level recorded by the logger.
        :param enable_stdout: Whether to mirror output to stdout.
        :return: :class:`Logger` configured for a single pass.
        """
        use_prefix = (prefix if prefix is not None else job_id)
        config = LoggerConfig(
            base_level=level,
            do_stdout=enable_stdout,
            str_format="%(asctime)s %(icon)s [%(levelname)s] JOB_%(name)s - %(message)s",
        )
        handlers: list[BaseLogHandler] = [
            JobRotatingFileHandler(base_dir=base_dir, filename_prefix=use_prefix, rotation="hourly"),
            ErrorFileHandler(base_dir=base_dir, filename_prefix=use_prefix, rotation="daily"),
        ]
        handlers.extend(_webhook_handlers(Env.LOG_WEBHOOK))
        return Logger(config=config, name=job_id, handlers=handlers)

    @staticmethod
    @asynccontextmanager
    async def job_run_logger(job_id: str,
                             base_dir: str = "logs",
                             prefix: str | None = None,
                             level: LogLevel = LogLevel.INFO,
                             enable_stdout: bool = False) -> AsyncIterator[Logger]:
        """Async context manager yielding a started per-pass logger.

        :yield: Started :class:`Logger` instance with automatic shutdown.
        """
        log = EnhancedLoggerFactory.create_job_run_logger(
            job_id, base_dir=base_dir, prefix=prefix, level=level, enable_stdout=enable_stdout
        )
        await log.start()
        try:
            yield log
        finally:
            await log.shutdown()


def log_exception(logger: Logger, exc: BaseException, context: str = ""):
    """Log an exception with traceback using the provided logger.

    :param logger: Logger instance used for reporting the failure.
    :param exc: Exception that should be logged.
    :param context: Optional textual context describing the failure.
    """
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    error_msg = f"EXCEPTION in {context}: {type(exc).__name__}: {str(exc)}\n{tb_str}"
    logger.error(error_msg)
