"""
调度器模块
==========

按轮执行不可变的 SwarmGraph：

1. 找出上游已全部完成的节点（拓扑前沿）
2. 前沿中的每个节点作为独立任务并发执行，读取同一个只读快照
3. 节点返回的部分更新按完成顺序在单一写入点合并
4. Assembler 之后进入 DECISION：迭代则清空状态并从入口重新开始，否则结束

一次运行的生命周期是显式的有限状态机：

    INIT -> RESOLVING_PROVIDER -> RUNNING -> DECISION -> RUNNING | COMPLETE
                      |              |           |
                      +-------> FAILED <---------+
"""

import asyncio
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from agentswarm.agents.base import RunContext
from agentswarm.exceptions import GraphDefinitionError, RunCancelled
from agentswarm.graph.state import (
    STATE_SCHEMA,
    StateSchema,
    SwarmState,
    reset_for_next_pass,
    snapshot,
)
from agentswarm.types import AgentMessage, RoundRecord, RunPhase, RunStatus
from agentswarm.utils.logger import get_logger

if TYPE_CHECKING:
    from agentswarm.graph.builder import SwarmGraph

logger = get_logger(__name__)

TRANSITIONS: Dict[RunPhase, Tuple[RunPhase, ...]] = {
    RunPhase.INIT: (RunPhase.RESOLVING_PROVIDER, RunPhase.FAILED),
    RunPhase.RESOLVING_PROVIDER: (RunPhase.RUNNING, RunPhase.FAILED),
    RunPhase.RUNNING: (RunPhase.DECISION, RunPhase.FAILED),
    RunPhase.DECISION: (RunPhase.RUNNING, RunPhase.COMPLETE, RunPhase.FAILED),
    RunPhase.COMPLETE: (),
    RunPhase.FAILED: (),
}

RoundCallback = Callable[[RoundRecord], None]


class RunLifecycle:
    """
    单次运行的阶段状态机

    只允许 TRANSITIONS 中列出的迁移，COMPLETE 与 FAILED 为终态。
    """

    def __init__(self, phase: RunPhase = RunPhase.INIT):
        self.phase = phase
        self.history: List[RunPhase] = [phase]

    def advance(self, phase: RunPhase) -> None:
        if phase not in TRANSITIONS[self.phase]:
            raise RuntimeError(f"非法的阶段迁移: {self.phase.value} -> {phase.value}")
        logger.debug(f"[Scheduler] 阶段 {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def fail(self) -> None:
        if not self.finished:
            self.advance(RunPhase.FAILED)

    @property
    def finished(self) -> bool:
        return not TRANSITIONS[self.phase]


@dataclass
class ScheduleOutcome:
    """
    调度结果

    Attributes:
        state: 最后一遍结束时的状态（status 为 complete）
        messages: 所有遍的消息，按完成顺序排列
        trace: 每一轮执行了哪些节点
        passes: 实际执行的遍数
    """
    state: SwarmState
    messages: List[AgentMessage] = field(default_factory=list)
    trace: List[RoundRecord] = field(default_factory=list)
    passes: int = 0


class Scheduler:
    """
    前沿轮次调度器

    使用示例：
        >>> scheduler = Scheduler(graph)
        >>> outcome = await scheduler.run(initial_state, context)
        >>> outcome.state["status"]
        <RunStatus.COMPLETE: 'complete'>
    """

    def __init__(
        self,
        graph: "SwarmGraph",
        schema: StateSchema = STATE_SCHEMA,
        retained_context: Sequence[str] = ("previous_verdict",),
    ):
        self.graph = graph
        self.schema = schema
        self.retained_context = tuple(retained_context)

    async def run(
        self,
        state: SwarmState,
        context: RunContext,
        lifecycle: Optional[RunLifecycle] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_round: Optional[RoundCallback] = None,
    ) -> ScheduleOutcome:
        """
        执行图直到结束

        Args:
            state: 初始状态
            context: 运行上下文（提供商已固定）
            lifecycle: 运行状态机，None 时视为提供商已解析
            cancel_event: 可选的取消事件，每轮开始前检查
            on_round: 每轮开始时的回调

        Returns:
            ScheduleOutcome

        Raises:
            GenerationFailure: 某个节点耗尽重试，整次运行中止
            RunCancelled: 取消事件被设置
        """
        lifecycle = lifecycle or RunLifecycle(RunPhase.RESOLVING_PROVIDER)
        outcome = ScheduleOutcome(state=state)

        while True:
            lifecycle.advance(RunPhase.RUNNING)
            logger.info(
                f"[Scheduler] {context.swarm_name} 第 {outcome.passes + 1} 遍开始 "
                f"(上限 {state['max_iterations']})"
            )
            state = await self._run_pass(state, context, outcome.trace, cancel_event, on_round)
            outcome.passes += 1
            outcome.messages.extend(state.get("agent_messages") or [])

            lifecycle.advance(RunPhase.DECISION)
            route = self.graph.conditional_edge.route(state)
            logger.info(
                f"[Scheduler] 第 {outcome.passes} 遍结束: {route} "
                f"(iteration={state['iteration']}/{state['max_iterations']})"
            )

            if route == "iterate":
                state = reset_for_next_pass(state, self._carry_context(state))
                continue

            state = self.schema.merge(state, {"status": RunStatus.COMPLETE})
            lifecycle.advance(RunPhase.COMPLETE)
            outcome.state = state
            return outcome

    def _carry_context(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        verdict = state.get("merged_verdict")
        if verdict is None or "previous_verdict" not in self.retained_context:
            return {}
        return {"previous_verdict": verdict.model_dump()}

    async def _run_pass(
        self,
        state: SwarmState,
        context: RunContext,
        trace: List[RoundRecord],
        cancel_event: Optional[asyncio.Event],
        on_round: Optional[RoundCallback],
    ) -> SwarmState:
        completed: Set[str] = set()
        pass_number = state["iteration"] + 1
        round_number = 0

        while len(completed) < len(self.graph):
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelled(f"第 {pass_number} 遍第 {round_number + 1} 轮开始前运行被取消")

            frontier = self.graph.frontier(completed)
            if not frontier:
                raise GraphDefinitionError(f"调度停滞，未完成的节点: {self.graph.pending(completed)}")

            round_number += 1
            record = RoundRecord(iteration=pass_number, round=round_number, nodes=list(frontier))
            trace.append(record)
            context.metrics.rounds += 1
            logger.info(f"[Scheduler] 第 {pass_number} 遍 round {round_number}: {', '.join(frontier)}")
            if on_round is not None:
                on_round(record)

            state = await self._run_round(frontier, state, context, cancel_event)
            completed.update(frontier)

        return state

    async def _run_round(
        self,
        frontier: Sequence[str],
        state: SwarmState,
        context: RunContext,
        cancel_event: Optional[asyncio.Event],
    ) -> SwarmState:
        """
        并发执行一轮

        所有任务读取同一个快照；任一任务失败时取消同轮其余任务并重新抛出。
        """
        view = snapshot(state)
        tasks: Dict[asyncio.Task, str] = {
            asyncio.create_task(self.graph.nodes[node_id].invoke(view, context), name=node_id): node_id
            for node_id in frontier
        }
        position = {node_id: index for index, node_id in enumerate(frontier)}
        cancel_waiter = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )

        pending = set(tasks)
        try:
            while pending:
                waiting = pending | {cancel_waiter} if cancel_waiter is not None else pending
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if cancel_waiter is not None and cancel_waiter in done:
                    raise RunCancelled(f"执行 {', '.join(frontier)} 期间运行被取消")

                # 同时完成的任务按声明顺序合并
                for task in sorted(done, key=lambda t: position[tasks[t]]):
                    pending.discard(task)
                    partial = task.result()
                    state = self.schema.merge(state, partial)
        finally:
            leftovers = list(pending)
            if cancel_waiter is not None:
                leftovers.append(cancel_waiter)
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

        return state
