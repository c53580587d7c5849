"""
Assembler 节点
==============

每一遍的终点：不发起外部调用，把累积的状态确定性地折叠成报告，
为解析失败的部分填充安全默认值，递增 iteration 并给出状态。

报告形状由各 Swarm 声明的 reducer 决定，这里提供通用的折叠工具：
- AssemblyInputs.section(): 按节点 ID 取解析后的结构化结果
- clamp_score() / mean_score(): 评分维度的截断与平均
- fill_defaults(): 按默认值模板递归补齐缺失字段
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from agentswarm.agents.base import BaseNode, RunContext, register_node
from agentswarm.graph.edges import should_iterate
from agentswarm.graph.extractor import extract
from agentswarm.types import (
    AgentMessage,
    ExtractionResult,
    NodeKind,
    RunStatus,
    Verdict,
)


@dataclass(frozen=True)
class AssemblyInputs:
    """Assembler 可见的全部累积数据"""
    payload: Mapping[str, Any]
    results: Mapping[str, str]
    verdict: Optional[Verdict]
    messages: Sequence[AgentMessage]
    iteration: int
    _cache: Dict[str, ExtractionResult] = field(default_factory=dict, repr=False, compare=False)

    def section(self, node_id: str) -> Dict[str, Any]:
        """解析成功时返回结构化结果，否则返回空字典"""
        extraction = self._extract(node_id)
        return extraction.payload if extraction.ok else {}

    def ok(self, node_id: str) -> bool:
        return self._extract(node_id).ok

    def _extract(self, node_id: str) -> ExtractionResult:
        if node_id not in self._cache:
            self._cache[node_id] = extract(self.results.get(node_id))
        return self._cache[node_id]


ReportReducer = Callable[[AssemblyInputs], Dict[str, Any]]


def clamp_score(value: float, low: float = 1, high: float = 10) -> float:
    return min(high, max(low, value))


def mean_score(values: Sequence[float], digits: int = 1) -> float:
    """算术平均，保留 digits 位小数；空序列为 0"""
    if not values:
        return 0.0
    return round(sum(values) / len(values), digits)


def fill_defaults(report: Mapping[str, Any], defaults: Mapping[str, Any]) -> Dict[str, Any]:
    """
    用默认值补齐报告

    report 中缺失或为 None 的字段取默认值；两边都是字典时递归补齐。
    默认值会被深拷贝，不会在多次运行之间共享。

    Args:
        report: reducer 产出的报告
        defaults: 默认值模板

    Returns:
        补齐后的新报告
    """
    filled = dict(report)
    for key, default in defaults.items():
        value = filled.get(key)
        if value is None:
            filled[key] = copy.deepcopy(default)
        elif isinstance(value, Mapping) and isinstance(default, Mapping):
            filled[key] = fill_defaults(value, default)
    return filled


def collect_sections(inputs: AssemblyInputs) -> Dict[str, Any]:
    """通用 reducer：按节点收集解析结果，附上 Supervisor 结论"""
    sections = {node_id: inputs.section(node_id) for node_id in sorted(inputs.results)}
    verdict = inputs.verdict
    return {
        "sections": sections,
        "unparsed_sections": [node_id for node_id in sorted(inputs.results) if not inputs.ok(node_id)],
        "verdict": verdict.summary if verdict is not None else "",
        "issues": list(verdict.issues) if verdict is not None else [],
    }


@register_node(NodeKind.ASSEMBLER)
class AssemblerNode(BaseNode):
    """
    Assembler 节点

    返回 {"report", "iteration", "status", "agent_messages"}。
    """

    kind = NodeKind.ASSEMBLER

    def __init__(
        self,
        node_id: str,
        reducer: Optional[ReportReducer] = None,
        defaults: Optional[Mapping[str, Any]] = None,
        label: str = "Swarm",
        description: str = "",
    ):
        super().__init__(node_id, description=description)
        self.reducer = reducer or collect_sections
        self.defaults = dict(defaults or {})
        self.label = label

    def assemble(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        inputs = AssemblyInputs(
            payload=state.get("payload") or {},
            results=state.get("specialist_results") or {},
            verdict=state.get("merged_verdict"),
            messages=tuple(state.get("agent_messages") or ()),
            iteration=state.get("iteration", 0),
        )
        return fill_defaults(self.reducer(inputs), self.defaults)

    async def _execute(self, state: Mapping[str, Any], context: RunContext) -> Dict[str, Any]:
        report = self.assemble(state)

        iteration = state.get("iteration", 0) + 1
        max_iterations = state.get("max_iterations", 1)
        again = should_iterate(state.get("merged_verdict"), iteration, max_iterations)

        return {
            "report": report,
            "iteration": iteration,
            "status": RunStatus.RUNNING if again else RunStatus.COMPLETE,
            "agent_messages": [
                AgentMessage(agent=self.node_id, content=f"{self.label} report assembled.")
            ],
        }
