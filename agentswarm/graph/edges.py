"""
边与路由模块
============

定义图中的顺序边、条件边，以及 Assembler 之后的“迭代或结束”判定。

循环只允许通过唯一的条件边发生：迭代次数由状态中的 iteration 计数器
显式约束，而不是依赖图的递归。
"""

from dataclasses import dataclass
from typing import Callable, Literal, Mapping, Optional, Tuple, Any

from agentswarm.types import EdgeKind, Verdict
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

START = "__start__"
END = "__end__"

RouteType = Literal["iterate", "finalize"]


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    kind: EdgeKind = EdgeKind.SEQUENTIAL


def should_iterate(
    verdict: Optional[Verdict],
    iteration: int,
    max_iterations: int,
) -> bool:
    """
    判断是否需要再跑一遍

    达到 max_iterations 时无论结论如何都结束。

    Args:
        verdict: Supervisor 结论，可能为空
        iteration: 已完成的遍数
        max_iterations: 遍数上限

    Returns:
        是否继续迭代
    """
    if iteration >= max_iterations:
        return False
    return bool(verdict is not None and verdict.needs_iteration)


def route_after_assembly(state: Mapping[str, Any]) -> RouteType:
    """
    Assembler 之后的路由

    Args:
        state: 当前状态

    Returns:
        "iterate" 或 "finalize"
    """
    iteration = state.get("iteration", 0)
    max_iterations = state.get("max_iterations", 1)

    if iteration >= max_iterations:
        logger.debug(f"[Route] assembler -> finalize (达到上限 {iteration}/{max_iterations})")
        return "finalize"

    if should_iterate(state.get("merged_verdict"), iteration, max_iterations):
        logger.debug(f"[Route] assembler -> iterate ({iteration}/{max_iterations})")
        return "iterate"

    logger.debug("[Route] assembler -> finalize")
    return "finalize"


@dataclass(frozen=True)
class ConditionalEdge:
    """
    离开 Assembler 的唯一条件边

    Attributes:
        source: Assembler 节点 ID
        loop_targets: 迭代时重新进入的入口节点
        finalize_target: 结束目标
        predicate: 路由函数
    """
    source: str
    loop_targets: Tuple[str, ...]
    finalize_target: str = END
    predicate: Callable[[Mapping[str, Any]], RouteType] = route_after_assembly
    kind: EdgeKind = EdgeKind.CONDITIONAL

    def route(self, state: Mapping[str, Any]) -> RouteType:
        return self.predicate(state)
