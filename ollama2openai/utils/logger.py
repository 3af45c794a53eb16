"""
统一日志处理模块，支持彩色输出和请求 ID 注入
"""
import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

# 当前请求 ID，由请求上下文中间件写入
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: Union[str, int, None]) -> int:
    """
    解析日志级别

    Args:
        level: 级别名称（debug/info/warn/warning/error）或 logging 常量

    Returns:
        logging 级别常量，无法识别时返回 INFO
    """
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    return LEVEL_NAMES.get(level.strip().lower(), logging.INFO)


class RequestIdFilter(logging.Filter):
    """把当前请求 ID 注入到日志记录中"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class ColoredFormatter(logging.Formatter):
    """彩色日志格式化器"""

    # 按级别数值取 ANSI 颜色，未知级别不着色
    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """格式化日志记录"""
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()

        if not self.use_color:
            return super().format(record)

        original_levelname = record.levelname
        original_msg = record.msg
        original_args = record.args

        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        reset = self.RESET

        # 先格式化消息再着色，避免 % 参数与颜色码混在一起
        record.levelname = f"{color}{record.levelname}{reset}"
        record.msg = f"{color}{record.getMessage()}{reset}"
        record.args = ()
        try:
            return super().format(record)
        finally:
            # 恢复原始值（避免影响其他处理器）
            record.levelname = original_levelname
            record.msg = original_msg
            record.args = original_args


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取日志记录器

    不单独添加处理器，日志统一传播到根日志记录器处理，避免重复输出。
    """
    return logging.getLogger(name)


def configure_root_logger(
    level: Union[str, int, None] = logging.INFO,
    use_color: bool = True,
    format_string: Optional[str] = None
) -> None:
    """
    配置根日志记录器

    Args:
        level: 日志级别，支持字符串（来自配置文件）或 logging 常量
        use_color: 是否使用彩色输出，默认为 True
        format_string: 自定义格式字符串，如果为 None 则使用默认格式
    """
    if format_string is None:
        format_string = '%(asctime)s | %(levelname)-8s | %(name)s | [%(request_id)s] %(message)s'

    numeric_level = parse_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.addFilter(RequestIdFilter())
    console_handler.setFormatter(ColoredFormatter(
        use_color=use_color,
        fmt=format_string,
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    # 设置第三方库的日志级别
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
