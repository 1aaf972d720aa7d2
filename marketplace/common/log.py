import inspect
import logging
import os
import sys

from loguru import logger

from marketplace.core.conf import settings
from marketplace.core.path_conf import LOG_DIR


class InterceptHandler(logging.Handler):
    """
    默认处理器，将标准库 logging 记录转发到 loguru

    参考：https://loguru.readthedocs.io/en/stable/overview.html#entirely-compatible-with-standard-logging
    """

    def emit(self, record: logging.LogRecord) -> None:
        # 获取对应的 Loguru 级别（如果存在）
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 查找记录日志消息的调用者
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging() -> None:
    """
    设置日志处理器

    Billing modules log through ``logging.getLogger(__name__)``; every record
    ends up in the loguru sinks configured here.
    """
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.LOG_STD_LEVEL)

    for name in logging.root.manager.loggerDict.keys():
        logging.getLogger(name).handlers = []
        if 'uvicorn.access' in name or 'watchfiles.main' in name:
            logging.getLogger(name).propagate = False
        else:
            logging.getLogger(name).propagate = True

    logger.remove()
    logger.configure(extra={'request_id': settings.TRACE_ID_LOG_DEFAULT_VALUE})
    logger.add(
        sys.stdout,
        level=settings.LOG_STD_LEVEL,
        format=settings.LOG_FORMAT,
        filter=lambda record: record['level'].no <= logger.level('WARNING').no,
    )
    logger.add(
        sys.stderr,
        level='ERROR',
        format=settings.LOG_FORMAT,
    )


def set_custom_logfile() -> None:
    """设置自定义日志文件"""
    if not os.path.exists(LOG_DIR):
        os.makedirs(LOG_DIR, exist_ok=True)

    common_config = {
        'format': settings.LOG_FORMAT,
        'enqueue': True,
        'rotation': '00:00',
        'retention': '7 days',
        'compression': 'tar.gz',
    }

    # 标准输出文件
    logger.add(
        str(LOG_DIR / settings.LOG_ACCESS_FILENAME),
        level=settings.LOG_FILE_ACCESS_LEVEL,
        filter=lambda record: record['level'].no <= logger.level('WARNING').no,
        backtrace=False,
        diagnose=False,
        **common_config,
    )

    # 标准错误文件
    logger.add(
        str(LOG_DIR / settings.LOG_ERROR_FILENAME),
        level=settings.LOG_FILE_ERROR_LEVEL,
        backtrace=True,
        diagnose=True,
        **common_config,
    )


log = logger
