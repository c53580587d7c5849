"""
可靠性包装模块
==============

为外部生成调用提供有界重试与指数退避。

第 attempt 次（从 0 开始）失败后等待 base_delay * multiplier ** attempt 秒，
最多尝试 max_attempts 次；最后一次失败以 GenerationFailure 抛出，
并通过异常链保留底层错误。成功时不会重试。
"""

import asyncio
import random
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from agentswarm.config.settings import RetryConfig
from agentswarm.exceptions import GenerationFailure, RunCancelled
from agentswarm.llm.service import GenerationService
from agentswarm.types import GenerationOptions
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    jitter: bool = False,
) -> float:
    """
    计算第 attempt 次失败后的等待时间

    Args:
        attempt: 失败的尝试序号（从 0 开始）
        base_delay: 基础延迟（秒）
        multiplier: 退避倍数
        jitter: 是否叠加最多 10% 的随机抖动

    Returns:
        等待秒数
    """
    delay = base_delay * (multiplier ** attempt)
    if jitter and delay > 0:
        delay += random.uniform(0, delay * 0.1)
    return delay


async def _wait(delay: float, cancel_event: Optional[asyncio.Event], sleep: Sleeper) -> None:
    if cancel_event is None:
        await sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise RunCancelled("退避等待期间运行被取消")


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    jitter: bool = False,
    label: str = "generation",
    cancel_event: Optional[asyncio.Event] = None,
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """
    带指数退避的重试调用

    Args:
        fn: 无参协程工厂，每次尝试调用一次
        max_attempts: 最大尝试次数（含第一次）
        base_delay: 基础延迟（秒）
        multiplier: 退避倍数
        jitter: 是否叠加随机抖动
        label: 日志与异常中使用的调用标签
        cancel_event: 可选的取消事件，在每次尝试前和退避期间检查
        sleep: 等待函数，测试中可替换

    Returns:
        fn 成功时的返回值

    Raises:
        GenerationFailure: 所有尝试均失败
        RunCancelled: 取消事件被设置
    """
    if max_attempts < 1:
        raise ValueError("max_attempts 必须至少为 1")

    last_error: Optional[BaseException] = None

    for attempt in range(max_attempts):
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled(f"[{label}] 运行已取消，放弃第 {attempt + 1} 次尝试")

        try:
            return await fn()
        except RunCancelled:
            raise
        except Exception as e:
            last_error = e
            logger.warning(
                f"[Retry] {label} 第 {attempt + 1}/{max_attempts} 次尝试失败: {e}"
            )

        if attempt < max_attempts - 1:
            delay = backoff_delay(attempt, base_delay, multiplier, jitter)
            logger.debug(f"[Retry] {label} 等待 {delay:.2f}s 后重试")
            await _wait(delay, cancel_event, sleep)

    raise GenerationFailure(label, max_attempts, last_error) from last_error


class RetryingGenerator:
    """
    绑定了重试策略的生成服务

    节点只通过它调用外部服务；它同时统计调用次数（含重试）。

    使用示例：
        >>> generator = RetryingGenerator(service, RetryConfig(base_delay_seconds=0))
        >>> text = await generator.generate("system", "user", label="theory-analyzer")
    """

    def __init__(
        self,
        service: GenerationService,
        retry_config: Optional[RetryConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.service = service
        self.retry_config = retry_config or RetryConfig()
        self.cancel_event = cancel_event
        self._sleep = sleep
        self.calls = 0
        self.calls_by_label: Dict[str, int] = {}

    @property
    def provider(self) -> str:
        return self.service.name

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[GenerationOptions] = None,
        label: str = "generation",
    ) -> str:
        async def attempt() -> str:
            self.calls += 1
            self.calls_by_label[label] = self.calls_by_label.get(label, 0) + 1
            return await self.service.generate(system_prompt, user_message, options)

        config = self.retry_config
        return await call_with_retry(
            attempt,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            multiplier=config.backoff_multiplier,
            jitter=config.jitter,
            label=label,
            cancel_event=self.cancel_event,
            sleep=self._sleep,
        )
