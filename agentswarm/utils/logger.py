"""
日志工具模块
============

提供统一的日志配置和管理。

各组件使用带方括号的标签记录日志，便于在并发输出中区分来源：
[Resolver]、[Retry]、[Scheduler]、[Node] <id>、[Extractor]。

同一进程内可能有多次运行并发进行，每条日志都带上所属运行的 run_id。
run_id 保存在 contextvars 中，asyncio 任务创建时会复制当前上下文，
因此一轮内并发执行的节点自动继承所属运行的 run_id。
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_RICH_FORMAT = "[%(run_id)s] %(message)s"

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

NO_RUN = "-"

_run_id: ContextVar[str] = ContextVar("agentswarm_run_id", default=NO_RUN)

_loggers: dict = {}
_initialized = False


class RunIdFilter(logging.Filter):
    """把当前上下文的 run_id 写入日志记录"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id.get()
        return True


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


def current_run_id() -> str:
    return _run_id.get()


@contextmanager
def bind_run(run_id: Optional[str] = None) -> Iterator[str]:
    """
    在上下文内把日志绑定到一次运行

    使用示例：
        >>> with bind_run() as run_id:
        ...     await scheduler.run(state, context)

    Args:
        run_id: 运行标识，None 时自动生成

    Yields:
        生效的 run_id
    """
    token = _run_id.set(run_id or new_run_id())
    try:
        yield _run_id.get()
    finally:
        _run_id.reset(token)


def setup_logger(
    log_dir: str = "logs",
    log_file: Optional[str] = None,
    level: str = "info",
    debug: bool = False,
    use_rich: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    设置全局日志配置

    只在第一次调用时生效。

    Args:
        log_dir: 日志目录
        log_file: 日志文件名，None 自动生成
        level: 日志级别
        debug: 是否启用调试模式（覆盖 level）
        use_rich: 是否使用 Rich 美化输出
        max_file_size: 单个日志文件最大大小
        backup_count: 保留的备份文件数
    """
    global _initialized

    if _initialized:
        return

    log_level = logging.DEBUG if debug else _LOG_LEVELS.get(level.lower(), logging.INFO)

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    if log_file is None:
        log_file = f"agentswarm_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    log_file_path = log_path / log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=debug,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter(_RICH_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _LOG_DATE_FORMAT))
    console_handler.setLevel(log_level)

    file_handler = RotatingFileHandler(
        log_file_path,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _LOG_DATE_FORMAT))
    file_handler.setLevel(logging.DEBUG)  # 文件记录所有级别

    for handler in (console_handler, file_handler):
        handler.addFilter(RunIdFilter())
        root_logger.addHandler(handler)

    # 降低第三方库的日志级别
    for lib in ["httpx", "httpcore", "openai", "anthropic", "urllib3", "langchain_core"]:
        logging.getLogger(lib).setLevel(logging.WARNING)

    _initialized = True
    root_logger.info(f"日志系统初始化完成，文件: {log_file_path}")


def get_logger(name: str) -> logging.Logger:
    """
    获取日志器实例

    Args:
        name: 日志器名称

    Returns:
        Logger 实例
    """
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return _loggers[name]


def set_log_level(level: str, logger_name: Optional[str] = None) -> None:
    """
    设置日志级别

    Args:
        level: 日志级别名称
        logger_name: 日志器名称，None 表示根日志器
    """
    logging.getLogger(logger_name).setLevel(_LOG_LEVELS.get(level.lower(), logging.INFO))
