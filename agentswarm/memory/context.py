"""
上下文注入模块
==============

Specialist 在构建系统提示词时调用上下文注入函数，把相关的历史信息附加到提示词后。

注入被视为增强而非必需：任何错误都退化为“原样返回基础提示词”。
"""

from typing import Optional, Protocol, runtime_checkable

from agentswarm.config.prompts import PromptTemplates
from agentswarm.memory.short_term import ShortTermMemory
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ContextInjector(Protocol):
    def inject(self, base_prompt: str, query: str) -> str: ...


class NoopInjector:
    """不做任何注入"""

    def inject(self, base_prompt: str, query: str) -> str:
        return base_prompt


def safe_inject(
    injector: Optional[ContextInjector],
    base_prompt: str,
    query: str,
) -> str:
    """
    调用注入函数，出错或返回值异常时原样返回 base_prompt

    Args:
        injector: 注入函数，None 表示不注入
        base_prompt: 基础系统提示词
        query: 用于检索的查询文本

    Returns:
        增强后的提示词
    """
    if injector is None:
        return base_prompt
    try:
        enriched = injector.inject(base_prompt, query)
    except Exception as e:
        logger.warning(f"上下文注入失败，使用原始提示词: {e}")
        return base_prompt
    if not isinstance(enriched, str):
        logger.warning(f"上下文注入返回了非字符串结果: {type(enriched).__name__}")
        return base_prompt
    return enriched


class MemoryContextInjector:
    """
    基于短期记忆的上下文注入

    使用示例：
        >>> memory = ShortTermMemory()
        >>> memory.store("run:1", "Card games benefit from a short tutorial.")
        >>> injector = MemoryContextInjector(memory)
        >>> prompt = injector.inject("You are a game designer.", "card game")
    """

    def __init__(self, memory: ShortTermMemory, max_memories: int = 3):
        self.memory = memory
        self.max_memories = max_memories

    def inject(self, base_prompt: str, query: str) -> str:
        memories = self.memory.search(query, top_k=self.max_memories)
        if not memories:
            return base_prompt

        lines = "\n".join(f"- {item['value']}" for item in memories)
        return base_prompt + PromptTemplates.get("MEMORY_CONTEXT", memories=lines)

    def remember(self, key: str, text: str) -> None:
        self.memory.store(key, text)
