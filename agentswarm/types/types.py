"""
类型定义模块
============
集中定义系统中使用的枚举和数据模型，确保各模块之间的类型一致。
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    SPECIALIST = "specialist"
    SUPERVISOR = "supervisor"
    ASSEMBLER = "assembler"


class EdgeKind(str, Enum):
    SEQUENTIAL = "sequential"
    CONDITIONAL = "conditional"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"


class RunPhase(str, Enum):
    """单次运行的状态机阶段"""
    INIT = "init"
    RESOLVING_PROVIDER = "resolving_provider"
    RUNNING = "running"
    DECISION = "decision"
    COMPLETE = "complete"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: Optional[float] = Field(default=None, ge=0, le=2, description="温度")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="最大输出 token 数")


class AgentMessage(BaseModel):
    """
    消息记录

    创建后不可修改。parsed_payload 只有在结构化解析成功时才存在。
    """
    model_config = ConfigDict(frozen=True)

    agent: str = Field(description="产生消息的节点 ID")
    content: str = Field(description="原始文本内容")
    timestamp: datetime = Field(default_factory=_utcnow, description="创建时间")
    parsed_payload: Optional[Dict[str, Any]] = Field(default=None, description="解析出的结构化数据")


class ExtractionResult(NamedTuple):
    """结构化解析结果：ok 为 False 时 payload 为 {"raw": 截断的原文}"""
    payload: Dict[str, Any]
    ok: bool


class Verdict(BaseModel):
    """Supervisor 的合成结论"""
    model_config = ConfigDict(frozen=True)

    needs_iteration: bool = Field(default=False, description="是否需要再跑一轮")
    summary: str = Field(default="", description="结论摘要")
    issues: List[str] = Field(default_factory=list, description="发现的问题")
    payload: Dict[str, Any] = Field(default_factory=dict, description="解析出的完整数据")
    parsed: bool = Field(default=False, description="结构化解析是否成功")


class NodeDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    upstream: FrozenSet[str] = Field(default_factory=frozenset)


class RoundRecord(BaseModel):
    iteration: int = Field(description="所属轮次（第几遍）")
    round: int = Field(description="该遍内的调度轮号，从 1 开始")
    nodes: List[str] = Field(default_factory=list, description="该轮并发执行的节点")


class RunMetrics(BaseModel):
    rounds: int = Field(default=0, description="调度轮总数")
    duration_seconds: float = Field(default=0.0, description="总执行时间")
    node_durations: Dict[str, float] = Field(default_factory=dict, description="各节点累计耗时")
    token_usage: Dict[str, int] = Field(
        default_factory=lambda: {"prompt": 0, "completion": 0, "total": 0},
        description="Token 使用统计",
    )
    parse_failures: int = Field(default=0, description="结构化解析失败次数")
    generation_calls: int = Field(default=0, description="生成服务调用次数（含重试）")


class RunResult(BaseModel):
    """run() 的返回值，是引擎对上层暴露的全部结果"""
    run_id: str = Field(default="", description="运行标识，出现在该运行的每条日志中")
    report: Dict[str, Any] = Field(default_factory=dict, description="最终报告")
    messages: List[AgentMessage] = Field(default_factory=list, description="按完成顺序排列的消息日志")
    iterations: int = Field(default=0, description="实际执行的遍数")
    provider: str = Field(description="本次运行固定使用的提供商")
    status: RunStatus = Field(default=RunStatus.COMPLETE)
    verdict: Optional[Verdict] = Field(default=None, description="最后一遍的 Supervisor 结论")
    metrics: RunMetrics = Field(default_factory=RunMetrics)
    trace: List[RoundRecord] = Field(default_factory=list, description="调度轨迹")
