"""
生成服务模块
============

定义编排核心所依赖的生成服务接口，以及基于 langchain 聊天模型的实现。

核心只通过 generate(system_prompt, user_message, options) 与外部服务交互；
传输或配额错误直接以异常形式抛出，由可靠性包装层负责重试。
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from agentswarm.config.settings import LLMConfig
from agentswarm.types import GenerationOptions
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class GenerationService(Protocol):
    """生成服务协议"""

    @property
    def name(self) -> str: ...

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[GenerationOptions] = None,
    ) -> str: ...


def _content_text(content: Any) -> str:
    """把 AIMessage.content 统一为字符串（Anthropic 可能返回内容块列表）"""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class ChatModelService:
    """
    基于 BaseChatModel 的生成服务

    模型实例延迟创建：构造失败（例如缺少 API 密钥）会在第一次 generate()
    时以异常形式出现，从而被 Provider 探测视为不可用。

    属性：
        name: 提供商名称
        token_usage: 累计 token 使用
    """

    def __init__(
        self,
        name: str,
        llm: Optional[BaseChatModel] = None,
        config: Optional[LLMConfig] = None,
    ):
        if llm is None and config is None:
            raise ValueError("llm 与 config 至少提供一个")
        self._name = name
        self._llm = llm
        self._config = config
        self.token_usage: Dict[str, int] = {"prompt": 0, "completion": 0, "total": 0}

    @property
    def name(self) -> str:
        return self._name

    @property
    def llm(self) -> BaseChatModel:
        """获取 LLM 实例"""
        if self._llm is None:
            from agentswarm.llm.factory import LLMFactory
            self._llm = LLMFactory.create(self._config)
        return self._llm

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[GenerationOptions] = None,
    ) -> str:
        options = options or GenerationOptions()
        bind_kwargs: Dict[str, Any] = {}
        if options.temperature is not None:
            bind_kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            bind_kwargs["max_tokens"] = options.max_tokens

        model = self.llm.bind(**bind_kwargs) if bind_kwargs else self.llm
        response = await model.ainvoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message),
        ])

        self._record_usage(getattr(response, "usage_metadata", None))
        return _content_text(response.content)

    def _record_usage(self, usage: Optional[Dict[str, Any]]) -> None:
        if not usage:
            return
        self.token_usage["prompt"] += usage.get("input_tokens", 0)
        self.token_usage["completion"] += usage.get("output_tokens", 0)
        self.token_usage["total"] += usage.get("total_tokens", 0)
        logger.debug(f"[{self._name}] Token 使用: {usage}")

    def __repr__(self) -> str:
        return f"ChatModelService(name={self._name!r})"
