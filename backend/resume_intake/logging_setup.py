"""
日志配置
各模块使用 logging.getLogger(__name__)，消息以 [组件名] 开头，
入口处调用 configure_logging() 一次即可
"""

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    配置根日志

    Args:
        level: 日志级别名称，默认读取环境变量 LOG_LEVEL，再默认 INFO
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
    # httpx 每个请求都会打 INFO，降到 WARNING 避免刷屏
    logging.getLogger("httpx").setLevel(logging.WARNING)
