"""
提供商解析模块
==============

每次运行开始时按优先级探测候选生成服务，固定第一个探测成功的服务，
运行期间不再重新解析。全部失败时在任何节点执行之前抛出 ProviderUnavailable。
"""

from typing import Dict, List, Optional, Sequence

from agentswarm.config.prompts import PromptTemplates
from agentswarm.config.settings import Settings, get_settings
from agentswarm.exceptions import ProviderUnavailable
from agentswarm.llm.service import ChatModelService, GenerationService
from agentswarm.types import GenerationOptions
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

HEALTH_CHECK_OPTIONS = GenerationOptions(max_tokens=5)


async def check_health(service: GenerationService) -> None:
    """发送一次极小的探测调用，失败时抛出底层异常"""
    await service.generate(
        PromptTemplates.get("HEALTH_CHECK_SYSTEM"),
        PromptTemplates.get("HEALTH_CHECK_USER"),
        HEALTH_CHECK_OPTIONS,
    )


async def resolve_provider(candidates: Sequence[GenerationService]) -> GenerationService:
    """
    按顺序探测候选服务，返回第一个可用的

    探测不做重试；找到可用服务后立即返回，不再探测后续候选。

    Args:
        candidates: 按优先级排列的候选服务

    Returns:
        第一个探测成功的服务

    Raises:
        ProviderUnavailable: 所有候选均探测失败
    """
    errors: Dict[str, str] = {}
    names: List[str] = []

    for service in candidates:
        names.append(service.name)
        logger.debug(f"[Resolver] 探测 {service.name}")
        try:
            await check_health(service)
        except Exception as e:
            errors[service.name] = str(e) or e.__class__.__name__
            logger.warning(f"[Resolver] {service.name} 不可用: {errors[service.name]}")
            continue

        logger.info(f"[Resolver] 本次运行固定使用 {service.name}")
        return service

    raise ProviderUnavailable(names, errors)


class ProviderResolver:
    """
    基于配置构建候选服务并解析

    使用示例：
        >>> resolver = ProviderResolver(settings)
        >>> service = await resolver.resolve()
        >>> service.name
        'anthropic'
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        services: Optional[Sequence[GenerationService]] = None,
    ):
        """
        Args:
            settings: 系统配置
            services: 显式给出的候选服务，提供时忽略配置中的优先级列表
        """
        self.settings = settings or get_settings()
        self._services = list(services) if services is not None else None

    def candidates(self, priority: Optional[Sequence[str]] = None) -> List[GenerationService]:
        if self._services is not None and priority is None:
            return list(self._services)

        names = list(priority) if priority is not None else self.settings.get_provider_priority()
        if self._services is not None:
            by_name = {service.name: service for service in self._services}
            return [by_name[name] for name in names if name in by_name]

        services: List[GenerationService] = []
        for name in names:
            try:
                config = self.settings.get_llm_config(name)
            except ValueError as e:
                logger.warning(f"[Resolver] 忽略未知提供商: {e}")
                continue
            services.append(ChatModelService(name, config=config))
        return services

    async def resolve(self, priority: Optional[Sequence[str]] = None) -> GenerationService:
        return await resolve_provider(self.candidates(priority))
