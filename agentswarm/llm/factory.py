"""
LLM 工厂模块
============

使用工厂模式创建和管理各提供商的 LLM 实例。
"""

from typing import Dict, Optional

from langchain_core.language_models import BaseChatModel

from agentswarm.config.settings import LLMConfig, get_settings
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/agentswarm/agentswarm",
    "X-Title": "agentswarm",
}


class LLMFactory:
    """
    LLM 工厂类

    支持的提供商：
    - anthropic: Anthropic Claude 模型
    - openai: OpenAI 模型
    - openrouter / groq: OpenAI 兼容接口
    - local: 本地或兼容 API 的模型（Ollama、vLLM 等）

    使用示例：
        >>> config = LLMConfig(provider="openai", model_name="gpt-4o-mini")
        >>> llm = LLMFactory.create(config)
    """

    _instances: Dict[str, BaseChatModel] = {}

    @classmethod
    def create(
        cls,
        config: Optional[LLMConfig] = None,
        cache_key: Optional[str] = None,
    ) -> BaseChatModel:
        """
        创建 LLM 实例

        Args:
            config: LLM 配置，None 使用优先级最高的提供商
            cache_key: 缓存键，相同键返回缓存实例

        Returns:
            LLM 实例
        """
        if config is None:
            settings = get_settings()
            config = settings.get_llm_config(settings.get_provider_priority()[0])

        if cache_key is None:
            cache_key = f"{config.provider}:{config.model_name}"

        if cache_key in cls._instances:
            logger.debug(f"使用缓存的 LLM 实例: {cache_key}")
            return cls._instances[cache_key]

        logger.info(f"创建 LLM: {config.provider}/{config.model_name}")

        if config.provider == "anthropic":
            llm = cls._create_anthropic(config)
        elif config.provider in ("openai", "openrouter", "groq"):
            llm = cls._create_openai_compatible(config)
        elif config.provider == "local":
            llm = cls._create_local(config)
        else:
            raise ValueError(f"不支持的 LLM 提供商: {config.provider}")

        cls._instances[cache_key] = llm
        return llm

    @classmethod
    def _create_openai_compatible(cls, config: LLMConfig) -> BaseChatModel:
        """
        创建 OpenAI 或 OpenAI 兼容接口的 LLM

        没有 API 密钥时 ChatOpenAI 会在构造阶段报错，
        该错误由 Provider 探测视为该提供商不可用。
        """
        from langchain_openai import ChatOpenAI

        kwargs = {
            "model": config.model_name,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

        if config.api_key:
            kwargs["api_key"] = config.api_key

        if config.base_url:
            kwargs["base_url"] = config.base_url

        if config.provider == "openrouter":
            kwargs["default_headers"] = OPENROUTER_HEADERS

        return ChatOpenAI(**kwargs)

    @classmethod
    def _create_anthropic(cls, config: LLMConfig) -> BaseChatModel:
        from langchain_anthropic import ChatAnthropic

        kwargs = {
            "model": config.model_name,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

        if config.api_key:
            kwargs["api_key"] = config.api_key

        return ChatAnthropic(**kwargs)

    @classmethod
    def _create_local(cls, config: LLMConfig) -> BaseChatModel:
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=config.model_name,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            base_url=config.base_url or "http://localhost:11434/v1",
            api_key=config.api_key or "not-needed",  # 本地模型通常不需要
        )

    @classmethod
    def clear_cache(cls) -> None:
        """清空所有缓存的 LLM 实例"""
        cls._instances.clear()
        logger.info("LLM 缓存已清空")

    @classmethod
    def list_cached(cls) -> list:
        return list(cls._instances.keys())
