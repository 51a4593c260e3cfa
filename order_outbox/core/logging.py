"""Настройка логирования (loguru + перехват stdlib logging)."""

import logging
import sys

from loguru import logger

# pika логирует каждый фрейм подключения на INFO/DEBUG.
_NOISY_LOGGERS = ("pika", "aiosqlite", "asyncio")


class InterceptHandler(logging.Handler):
    """Перенаправить записи stdlib logging (pika, SQLAlchemy, uvicorn) в loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(
            level,
            "[{name}] {msg}",
            name=record.name,
            msg=record.getMessage(),
        )


def setup_logging(level: str, json_logs: bool = False) -> None:
    """Настроить loguru и перехват stdlib logging.

    Parameters
    ----------
    level : str
        Уровень логирования (например, `INFO`).
    json_logs : bool, default=False
        Писать записи в stdout сериализованными в JSON (для сборщиков логов).
    """

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        serialize=json_logs,
    )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
