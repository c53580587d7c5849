"""
可视化工具模块
==============

提供图拓扑与执行轨迹的可视化功能。

支持的格式：
- Mermaid: 流程图标记语言
- Text: 纯文本表示
"""

from typing import TYPE_CHECKING, Dict, List

from agentswarm.graph.edges import END, START
from agentswarm.types import NodeKind, RunResult
from agentswarm.utils.logger import get_logger

if TYPE_CHECKING:
    from agentswarm.graph.builder import SwarmGraph

logger = get_logger(__name__)

_NODE_SHAPES = {
    NodeKind.SPECIALIST: ("[", "]"),
    NodeKind.SUPERVISOR: ("{{", "}}"),
    NodeKind.ASSEMBLER: ("[[", "]]"),
}


def _mermaid_id(node_id: str) -> str:
    return node_id.replace("-", "_").replace(" ", "_")


def generate_mermaid_graph(graph: "SwarmGraph") -> str:
    """
    生成图拓扑的 Mermaid 描述

    顺序边为实线，离开 Assembler 的条件边为虚线。

    Args:
        graph: 编译后的图

    Returns:
        Mermaid 格式字符串
    """
    lines = ["flowchart TD", f"    {_mermaid_id(START)}((start))"]

    for node_id in graph.order:
        left, right = _NODE_SHAPES[graph.descriptors[node_id].kind]
        lines.append(f"    {_mermaid_id(node_id)}{left}{node_id}{right}")
    lines.append(f"    {_mermaid_id(END)}((end))")

    for edge in graph.edges():
        lines.append(f"    {_mermaid_id(edge.source)} --> {_mermaid_id(edge.target)}")

    conditional = graph.conditional_edge
    for target in conditional.loop_targets:
        lines.append(f"    {_mermaid_id(conditional.source)} -. iterate .-> {_mermaid_id(target)}")
    lines.append(
        f"    {_mermaid_id(conditional.source)} -. finalize .-> {_mermaid_id(conditional.finalize_target)}"
    )
    return "\n".join(lines)


class ExecutionVisualizer:
    """
    执行过程可视化器

    根据 RunResult 中的调度轨迹生成可视化表示。
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def generate_mermaid(self, result: RunResult) -> str:
        """
        按轮生成执行流程图

        每一轮是一个子图，轮与轮之间按执行顺序连接。

        Args:
            result: 运行结果

        Returns:
            Mermaid 格式字符串
        """
        lines = ["flowchart TD", "    START((start))"]
        prev = "START"

        for record in result.trace:
            group = f"P{record.iteration}R{record.round}"
            lines.append(f"    subgraph {group}[pass {record.iteration} / round {record.round}]")
            for node_id in record.nodes:
                lines.append(f"        {group}_{_mermaid_id(node_id)}[{node_id}]")
            lines.append("    end")
            lines.append(f"    {prev} --> {group}")
            prev = group

        lines.append("    END((end))")
        lines.append(f"    {prev} --> END")
        return "\n".join(lines)

    def generate_text_trace(self, result: RunResult, max_width: int = 80) -> str:
        """
        生成文本格式的执行轨迹

        Args:
            result: 运行结果
            max_width: 最大宽度

        Returns:
            文本格式字符串
        """
        lines = []
        lines.append("=" * max_width)
        lines.append("执行轨迹".center(max_width))
        lines.append("=" * max_width)

        lines.append(f"运行: {result.run_id or '-'}  提供商: {result.provider}")
        lines.append(f"遍数: {result.iterations}")
        lines.append("-" * max_width)

        for record in result.trace:
            nodes = ", ".join(record.nodes)
            lines.append(f"  pass {record.iteration} round {record.round}: {nodes}"[:max_width])

        durations = result.metrics.node_durations
        if durations:
            lines.append("-" * max_width)
            lines.append("执行时间:")
            total = sum(durations.values())
            for node_id, duration in durations.items():
                pct = (duration / total * 100) if total > 0 else 0
                bar_len = int(pct / 5)
                bar = "█" * bar_len + "░" * (20 - bar_len)
                lines.append(f"  {node_id[:22]:22} {bar} {duration:.2f}s ({pct:.1f}%)")

        lines.append("=" * max_width)
        return "\n".join(lines)

    def generate_summary(self, result: RunResult) -> str:
        metrics = result.metrics
        verdict = result.verdict

        lines: List[str] = []
        status = "✅ 完成" if result.status.value == "complete" else "❌ 未完成"
        lines.append(f"状态: {status}")
        lines.append(f"遍数: {result.iterations}  轮数: {metrics.rounds}")
        lines.append(f"生成调用: {metrics.generation_calls} 次，解析失败: {metrics.parse_failures} 次")
        lines.append(f"总耗时: {metrics.duration_seconds:.2f}s")
        if metrics.token_usage.get("total"):
            lines.append(f"Token消耗: {metrics.token_usage['total']}")
        if verdict is not None and verdict.summary:
            lines.append(f"结论: {verdict.summary}")
        return "\n".join(lines)


def messages_by_agent(result: RunResult) -> Dict[str, int]:
    """每个节点产生的消息数"""
    counts: Dict[str, int] = {}
    for message in result.messages:
        counts[message.agent] = counts.get(message.agent, 0) + 1
    return counts


def print_execution_trace(result: RunResult) -> None:
    """
    打印执行轨迹到控制台

    Args:
        result: 运行结果
    """
    from rich.console import Console
    from rich.panel import Panel

    console = Console()
    visualizer = ExecutionVisualizer()

    console.print(Panel(visualizer.generate_text_trace(result), title="执行轨迹"))
    console.print(Panel(visualizer.generate_summary(result), title="执行摘要"))
