"""
LLM 模块
========

提供生成服务接口、LLM 创建、可靠性包装与提供商解析。

支持的 LLM 提供商：
- Anthropic (Claude 系列)
- OpenAI / OpenRouter / Groq (OpenAI 兼容接口)
- 本地模型 (通过兼容 API)
"""

from agentswarm.llm.factory import LLMFactory
from agentswarm.llm.service import GenerationService, ChatModelService
from agentswarm.llm.retry import call_with_retry, backoff_delay, RetryingGenerator
from agentswarm.llm.resolver import ProviderResolver, resolve_provider

__all__ = [
    "LLMFactory",
    "GenerationService",
    "ChatModelService",
    "call_with_retry",
    "backoff_delay",
    "RetryingGenerator",
    "ProviderResolver",
    "resolve_provider",
]
