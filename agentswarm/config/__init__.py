"""
配置模块
========

提供系统配置管理功能。
"""

from agentswarm.config.settings import (
    Settings,
    LLMConfig,
    RetryConfig,
    get_settings,
    reload_settings,
)
from agentswarm.config.prompts import PromptTemplates

__all__ = [
    "Settings",
    "LLMConfig",
    "RetryConfig",
    "get_settings",
    "reload_settings",
    "PromptTemplates",
]
