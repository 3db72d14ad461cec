"""
Логгер Paster: консоль всегда, файл paster.log — только при включённом file_logging.

Фильтр файлового хендлера берёт флаг из кэша config.file_logging_enabled(),
а не с диска: он срабатывает на каждую запись, в том числе на записи
самого чтения конфига.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# тот же объект, что config.logger
logger = logging.getLogger(config.APP_NAME)


def file_logging_filter(record: logging.LogRecord) -> bool:
    return config.file_logging_enabled()


def setup_logging(log_file: str = config.LOG_FILE) -> logging.Logger:
    """(Пере)установить хендлеры логгера; старые хендлеры закрываются."""
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # delay=True: файл создаётся при первой пропущенной записи
    to_file = RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8", delay=True
    )
    to_file.addFilter(file_logging_filter)
    to_console = logging.StreamHandler(sys.stdout)
    to_console.setLevel(logging.INFO)

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in (to_file, to_console):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return logger


setup_logging()
