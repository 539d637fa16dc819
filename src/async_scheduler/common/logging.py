"""日志配置模块

基于 loguru 的日志初始化。库内部只通过 loguru 的 logger 输出，
是否落盘、输出级别由应用在启动时调用 setup_logging 决定。
"""

import os
import sys

from loguru import logger

from async_scheduler.common.config import settings

# 日志格式
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    level: str | None = None,
    log_to_file: bool | None = None,
    log_file_path: str | None = None,
) -> None:
    """初始化日志系统

    Args:
        level: 日志级别，默认使用 settings.LOG_LEVEL
        log_to_file: 是否输出到文件，默认使用 settings.LOG_TO_FILE
        log_file_path: 日志文件路径，默认使用 settings.log_file
    """
    logger.remove()

    log_level = level or settings.LOG_LEVEL
    should_log_to_file = log_to_file if log_to_file is not None else settings.LOG_TO_FILE
    file_path = log_file_path or settings.log_file

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=log_level,
        colorize=True,
    )

    if should_log_to_file:
        log_dir = os.path.dirname(file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        logger.add(
            file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation="100 MB",
            retention="14 days",
            compression="zip",
            encoding="utf-8",
            enqueue=True,  # 异步写入
        )

    logger.info(f"日志初始化完成: level={log_level}, file={should_log_to_file}")
