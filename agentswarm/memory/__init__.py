"""
记忆模块
========

提供短期记忆存储与上下文注入。
"""

from agentswarm.memory.short_term import ShortTermMemory
from agentswarm.memory.context import (
    ContextInjector,
    NoopInjector,
    MemoryContextInjector,
    safe_inject,
)

__all__ = [
    "ShortTermMemory",
    "ContextInjector",
    "NoopInjector",
    "MemoryContextInjector",
    "safe_inject",
]
