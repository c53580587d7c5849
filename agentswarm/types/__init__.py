"""
类型模块
========

集中导出系统中共享的枚举与数据模型。
"""

from agentswarm.types.types import (
    NodeKind,
    EdgeKind,
    RunStatus,
    RunPhase,
    GenerationOptions,
    AgentMessage,
    ExtractionResult,
    Verdict,
    NodeDescriptor,
    RoundRecord,
    RunMetrics,
    RunResult,
)

__all__ = [
    "NodeKind",
    "EdgeKind",
    "RunStatus",
    "RunPhase",
    "GenerationOptions",
    "AgentMessage",
    "ExtractionResult",
    "Verdict",
    "NodeDescriptor",
    "RoundRecord",
    "RunMetrics",
    "RunResult",
]
