"""
日志配置 —— 统一的根 logger 设置，各模块使用 logging.getLogger(__name__)
"""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """配置根 logger，输出到 stdout"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # openai / httpx 的请求日志过于啰嗦
    logging.getLogger("httpx").setLevel(logging.WARNING)
