"""
异常定义模块
============

编排引擎对外暴露的异常体系。

只有 ProviderUnavailable 与 GenerationFailure 会提前终止一次运行；
结构化输出解析失败不是异常，而是 ExtractionResult(ok=False)。
"""

from typing import Dict, List, Optional


class SwarmError(Exception):
    """编排引擎异常基类"""


class ProviderUnavailable(SwarmError):
    """
    所有候选生成服务的探测均失败

    在任何图节点执行之前抛出。

    Attributes:
        candidates: 按优先级探测过的提供商名称
        errors: 提供商名称 -> 探测失败原因
    """

    def __init__(self, candidates: List[str], errors: Optional[Dict[str, str]] = None):
        self.candidates = list(candidates)
        self.errors = dict(errors or {})
        if self.candidates:
            detail = ", ".join(
                f"{name}: {self.errors.get(name, '未知错误')}" for name in self.candidates
            )
            message = f"没有可用的生成服务（已探测 {len(self.candidates)} 个）: {detail}"
        else:
            message = "没有配置任何候选生成服务"
        super().__init__(message)


class GenerationFailure(SwarmError):
    """
    某次生成调用耗尽了重试次数

    Attributes:
        label: 发起调用的节点 ID 或调用标签
        attempts: 实际尝试次数
        last_error: 最后一次失败的底层异常
    """

    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"[{label}] 生成调用在 {attempts} 次尝试后失败: {last_error}"
        )


class RunCancelled(SwarmError):
    """调用方通过取消事件放弃了正在进行的运行"""


class GraphDefinitionError(SwarmError):
    """图拓扑或节点声明不合法"""
