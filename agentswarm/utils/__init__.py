"""
工具模块
========

提供日志、可视化等辅助功能。
"""

from agentswarm.utils.logger import (
    setup_logger,
    get_logger,
    set_log_level,
    bind_run,
    current_run_id,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "set_log_level",
    "bind_run",
    "current_run_id",
]
