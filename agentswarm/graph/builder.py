"""
图构建器模块
============

把节点和边组装成不可变的 SwarmGraph，并提供运行入口 SwarmSystem。

构建时校验拓扑：
- 所有边引用的节点都已添加，且每个节点至少有一条入边
- 除离开 Assembler 的唯一条件边外不存在环
- 恰好一个 Assembler，且它是唯一的汇点
- 至多一个 Supervisor
- 每个节点声明读取的上游都是它的祖先 Specialist
- 条件边的回环目标正是图的入口节点
"""

import asyncio
import time
from collections import defaultdict
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from agentswarm.agents.base import BaseNode, RunContext, payload_query
from agentswarm.config.settings import Settings, get_settings
from agentswarm.exceptions import GraphDefinitionError
from agentswarm.graph.edges import END, START, ConditionalEdge, Edge, RouteType, route_after_assembly
from agentswarm.graph.scheduler import RoundCallback, RunLifecycle, Scheduler
from agentswarm.graph.state import create_initial_state
from agentswarm.llm.factory import LLMFactory
from agentswarm.llm.resolver import ProviderResolver
from agentswarm.llm.retry import RetryingGenerator, Sleeper
from agentswarm.llm.service import GenerationService
from agentswarm.memory.context import ContextInjector, MemoryContextInjector
from agentswarm.memory.short_term import ShortTermMemory
from agentswarm.swarms import get_swarm
from agentswarm.swarms.base import SwarmDefinition
from agentswarm.types import NodeDescriptor, NodeKind, RunMetrics, RunPhase, RunResult
from agentswarm.utils.logger import bind_run, get_logger

logger = get_logger(__name__)


class SwarmGraph:
    """
    编译后的不可变图

    属性：
        name: 图名称
        nodes: 节点 ID -> 节点实例（只读映射）
        descriptors: 节点 ID -> NodeDescriptor
        entry: 入口节点（没有上游）
        assembler: Assembler 节点 ID
        conditional_edge: 离开 Assembler 的条件边
        order: 一个合法的拓扑顺序
    """

    def __init__(
        self,
        name: str,
        nodes: Mapping[str, BaseNode],
        descriptors: Mapping[str, NodeDescriptor],
        conditional_edge: ConditionalEdge,
        order: Sequence[str],
    ):
        self._name = name
        self._nodes = MappingProxyType(dict(nodes))
        self._descriptors = MappingProxyType(dict(descriptors))
        self._conditional_edge = conditional_edge
        self._order = tuple(order)
        self._entry = tuple(node_id for node_id in self._order if not self._descriptors[node_id].upstream)

    @property
    def name(self) -> str:
        return self._name

    @property
    def nodes(self) -> Mapping[str, BaseNode]:
        return self._nodes

    @property
    def descriptors(self) -> Mapping[str, NodeDescriptor]:
        return self._descriptors

    @property
    def conditional_edge(self) -> ConditionalEdge:
        return self._conditional_edge

    @property
    def order(self) -> Tuple[str, ...]:
        return self._order

    @property
    def entry(self) -> Tuple[str, ...]:
        return self._entry

    @property
    def assembler(self) -> str:
        return self._conditional_edge.source

    def upstream(self, node_id: str) -> FrozenSet[str]:
        return self._descriptors[node_id].upstream

    def edges(self) -> List[Edge]:
        """所有顺序边（入口边的 source 为 START）"""
        edges = []
        for node_id in self._order:
            upstream = self._descriptors[node_id].upstream
            if not upstream:
                edges.append(Edge(START, node_id))
            for source in sorted(upstream, key=self._order.index):
                edges.append(Edge(source, node_id))
        return edges

    def frontier(self, completed: Iterable[str]) -> List[str]:
        """
        上游已全部完成、自身尚未执行的节点

        多个上游在不同时间完成时，只有最后一个完成后节点才会进入前沿。

        Args:
            completed: 本遍已完成的节点

        Returns:
            按拓扑顺序排列的节点 ID
        """
        done = set(completed)
        return [
            node_id for node_id in self._order
            if node_id not in done and self._descriptors[node_id].upstream <= done
        ]

    def pending(self, completed: Iterable[str]) -> List[str]:
        done = set(completed)
        return [node_id for node_id in self._order if node_id not in done]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __repr__(self) -> str:
        return f"SwarmGraph({self._name!r}, nodes={len(self)})"


class GraphBuilder:
    """
    图构建器

    使用示例：
        >>> builder = GraphBuilder("demo")
        >>> builder.add_node(SpecialistNode("a")).add_node(SpecialistNode("b"))
        >>> builder.add_node(SupervisorNode("review", reads=["a", "b"]))
        >>> builder.add_node(AssemblerNode("assembler"))
        >>> builder.add_edge(START, "a").add_edge(START, "b")
        >>> builder.add_edge("a", "review").add_edge("b", "review")
        >>> builder.add_edge("review", "assembler")
        >>> graph = builder.build()
    """

    def __init__(self, name: str = "swarm"):
        self.name = name
        self._nodes: Dict[str, BaseNode] = {}
        self._edges: List[Edge] = []
        self._conditional: Optional[Dict[str, Any]] = None

    def add_node(self, node: BaseNode) -> "GraphBuilder":
        if node.node_id in self._nodes:
            raise GraphDefinitionError(f"节点 ID 重复: {node.node_id}")
        self._nodes[node.node_id] = node
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        if target in (START, END):
            raise GraphDefinitionError(f"顺序边不能指向 {target}")
        if source == END:
            raise GraphDefinitionError("顺序边不能从 END 出发")
        self._edges.append(Edge(source, target))
        return self

    def set_conditional_edge(
        self,
        source: str,
        loop_targets: Optional[Sequence[str]] = None,
        predicate: Callable[[Mapping[str, Any]], RouteType] = route_after_assembly,
    ) -> "GraphBuilder":
        """
        设置离开 Assembler 的条件边

        Args:
            source: Assembler 节点 ID
            loop_targets: 迭代时重新进入的节点，默认为所有入口节点
            predicate: 路由函数
        """
        if self._conditional is not None:
            raise GraphDefinitionError("条件边只能设置一次")
        self._conditional = {
            "source": source,
            "loop_targets": tuple(loop_targets) if loop_targets is not None else None,
            "predicate": predicate,
        }
        return self

    def build(self) -> SwarmGraph:
        """
        校验并编译

        Returns:
            不可变的 SwarmGraph

        Raises:
            GraphDefinitionError: 拓扑不合法
        """
        if not self._nodes:
            raise GraphDefinitionError("图中没有任何节点")

        upstream: Dict[str, Set[str]] = {node_id: set() for node_id in self._nodes}
        downstream: Dict[str, Set[str]] = defaultdict(set)
        has_incoming: Set[str] = set()

        for edge in self._edges:
            if edge.target not in self._nodes:
                raise GraphDefinitionError(f"边 {edge.source} -> {edge.target} 指向未知节点")
            has_incoming.add(edge.target)
            if edge.source == START:
                continue
            if edge.source not in self._nodes:
                raise GraphDefinitionError(f"边 {edge.source} -> {edge.target} 来自未知节点")
            if edge.source == edge.target:
                raise GraphDefinitionError(f"节点 {edge.source} 不能指向自身")
            upstream[edge.target].add(edge.source)
            downstream[edge.source].add(edge.target)

        unreachable = [node_id for node_id in self._nodes if node_id not in has_incoming]
        if unreachable:
            raise GraphDefinitionError(f"节点没有入边: {', '.join(unreachable)}")

        for node_id, sources in upstream.items():
            if sources and any(e.source == START and e.target == node_id for e in self._edges):
                raise GraphDefinitionError(f"入口节点 {node_id} 不能同时拥有上游")

        order = self._topological_order(upstream, downstream)
        ancestors = self._ancestors(order, upstream)

        assembler = self._check_kinds(downstream)
        self._check_reads(ancestors)
        conditional_edge = self._conditional_edge(assembler, upstream, order)

        descriptors = {
            node_id: NodeDescriptor(id=node_id, kind=node.kind, upstream=frozenset(upstream[node_id]))
            for node_id, node in self._nodes.items()
        }

        graph = SwarmGraph(self.name, self._nodes, descriptors, conditional_edge, order)
        logger.info(f"图 {self.name} 构建完成: {len(graph)} 个节点，入口 {', '.join(graph.entry)}")
        return graph

    def _topological_order(
        self,
        upstream: Mapping[str, Set[str]],
        downstream: Mapping[str, Set[str]],
    ) -> List[str]:
        declared = list(self._nodes)
        remaining = {node_id: len(sources) for node_id, sources in upstream.items()}
        ready = [node_id for node_id in declared if remaining[node_id] == 0]
        order: List[str] = []

        while ready:
            node_id = ready.pop(0)
            order.append(node_id)
            for target in sorted(downstream.get(node_id, ()), key=declared.index):
                remaining[target] -= 1
                if remaining[target] == 0:
                    ready.append(target)

        if len(order) != len(declared):
            cyclic = [node_id for node_id in declared if node_id not in order]
            raise GraphDefinitionError(f"图中存在环: {', '.join(cyclic)}")
        return order

    @staticmethod
    def _ancestors(order: Sequence[str], upstream: Mapping[str, Set[str]]) -> Dict[str, FrozenSet[str]]:
        ancestors: Dict[str, FrozenSet[str]] = {}
        for node_id in order:
            found: Set[str] = set()
            for source in upstream[node_id]:
                found.add(source)
                found.update(ancestors[source])
            ancestors[node_id] = frozenset(found)
        return ancestors

    def _check_kinds(self, downstream: Mapping[str, Set[str]]) -> str:
        assemblers = [n for n, node in self._nodes.items() if node.kind is NodeKind.ASSEMBLER]
        if len(assemblers) != 1:
            raise GraphDefinitionError(f"图中必须恰好有一个 Assembler，实际 {len(assemblers)} 个")
        assembler = assemblers[0]

        if downstream.get(assembler):
            raise GraphDefinitionError(f"Assembler {assembler} 不能有顺序出边")
        sinks = [n for n in self._nodes if not downstream.get(n) and n != assembler]
        if sinks:
            raise GraphDefinitionError(f"以下节点没有下游，Assembler 必须是唯一汇点: {', '.join(sinks)}")

        supervisors = [n for n, node in self._nodes.items() if node.kind is NodeKind.SUPERVISOR]
        if len(supervisors) > 1:
            raise GraphDefinitionError(f"图中至多有一个 Supervisor: {', '.join(supervisors)}")
        return assembler

    def _check_reads(self, ancestors: Mapping[str, FrozenSet[str]]) -> None:
        for node_id, node in self._nodes.items():
            for source in node.read_order:
                if source not in self._nodes:
                    raise GraphDefinitionError(f"节点 {node_id} 读取了未知节点 {source}")
                if self._nodes[source].kind is not NodeKind.SPECIALIST:
                    raise GraphDefinitionError(f"节点 {node_id} 只能读取 Specialist 的结果，{source} 不是")
                if source not in ancestors[node_id]:
                    raise GraphDefinitionError(
                        f"节点 {node_id} 读取的 {source} 不是它的上游，无法保证先于它完成"
                    )
            if node.reads_verdict and not any(
                self._nodes[a].kind is NodeKind.SUPERVISOR for a in ancestors[node_id]
            ):
                raise GraphDefinitionError(f"节点 {node_id} 读取结论，但上游没有 Supervisor")

    def _conditional_edge(
        self,
        assembler: str,
        upstream: Mapping[str, Set[str]],
        order: Sequence[str],
    ) -> ConditionalEdge:
        entry = tuple(node_id for node_id in order if not upstream[node_id])
        spec = self._conditional or {"source": assembler, "loop_targets": None, "predicate": route_after_assembly}

        if spec["source"] != assembler:
            raise GraphDefinitionError(f"条件边必须从 Assembler {assembler} 出发，而不是 {spec['source']}")

        loop_targets = spec["loop_targets"] or entry
        if set(loop_targets) != set(entry):
            raise GraphDefinitionError(
                f"条件边的回环目标必须是入口节点 {list(entry)}，实际 {list(loop_targets)}"
            )
        return ConditionalEdge(
            source=assembler,
            loop_targets=tuple(node_id for node_id in order if node_id in set(loop_targets)),
            predicate=spec["predicate"],
        )


def build_graph(definition: SwarmDefinition) -> SwarmGraph:
    """
    把声明式 Swarm 编译为 SwarmGraph

    Args:
        definition: Swarm 声明

    Returns:
        SwarmGraph
    """
    builder = GraphBuilder(definition.name)
    for spec in definition.nodes:
        builder.add_node(spec.create())

    for spec in definition.nodes:
        if not spec.upstream:
            builder.add_edge(START, spec.id)
        for source in spec.upstream:
            builder.add_edge(source, spec.id)
        if spec.kind is NodeKind.ASSEMBLER:
            builder.set_conditional_edge(spec.id)

    return builder.build()


class SwarmSystem:
    """
    Swarm 运行入口

    每次运行：解析并固定提供商 -> 调度器按轮执行 -> 返回 RunResult。

    使用示例：
        >>> system = SwarmSystem(get_swarm("music_edu"))
        >>> result = system.run("Ear training app for guitarists", max_iterations=1)
        >>> result.report["music_edu_score"]["overall"]

    属性：
        definition: Swarm 声明
        settings: 系统配置
        graph: 编译后的图
        injector: 上下文注入函数
    """

    def __init__(
        self,
        definition: SwarmDefinition,
        settings: Optional[Settings] = None,
        services: Optional[Sequence[GenerationService]] = None,
        injector: Optional[ContextInjector] = None,
        remember_result: bool = False,
        sleep: Sleeper = asyncio.sleep,
    ):
        """
        Args:
            definition: Swarm 声明
            settings: 系统配置，None 使用默认配置
            services: 显式给出的候选生成服务，None 时按配置的优先级创建
            injector: 上下文注入函数，None 时按配置决定是否启用记忆注入
            remember_result: 运行结束后是否把结论写入记忆
            sleep: 退避等待函数
        """
        self.definition = definition
        self.settings = settings or get_settings()
        self.resolver = ProviderResolver(self.settings, services)
        self.remember_result = remember_result
        self._sleep = sleep
        self._graph: Optional[SwarmGraph] = None

        if injector is None and self.settings.enable_memory_context:
            injector = MemoryContextInjector(ShortTermMemory(max_size=self.settings.memory_max_items))
        self.injector = injector

        logger.info(f"初始化 SwarmSystem: {definition.name}")

    @property
    def graph(self) -> SwarmGraph:
        """获取编译后的图（延迟构建）"""
        if self._graph is None:
            self._graph = build_graph(self.definition)
        return self._graph

    async def arun(
        self,
        initial_payload: Any,
        max_iterations: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_round: Optional[RoundCallback] = None,
    ) -> RunResult:
        """
        执行一次运行

        Args:
            initial_payload: 初始输入，字符串视为 {"idea": 文本}
            max_iterations: 最大遍数，None 使用配置值
            cancel_event: 可选的取消事件
            on_round: 每轮开始时的回调

        Returns:
            RunResult

        Raises:
            ProviderUnavailable: 没有可用的生成服务，任何节点都不会执行
            GenerationFailure: 某次生成调用耗尽重试
            RunCancelled: 运行被取消
        """
        with bind_run() as run_id:
            return await self._execute(initial_payload, max_iterations, cancel_event, on_round, run_id)

    async def _execute(
        self,
        initial_payload: Any,
        max_iterations: Optional[int],
        cancel_event: Optional[asyncio.Event],
        on_round: Optional[RoundCallback],
        run_id: str,
    ) -> RunResult:
        payload = self.definition.normalize_payload(initial_payload)
        if max_iterations is None:
            max_iterations = self.settings.max_iterations
        state = create_initial_state(payload, max_iterations)
        graph = self.graph

        lifecycle = RunLifecycle()
        metrics = RunMetrics()
        start_time = time.perf_counter()
        logger.info(f"开始执行 {self.definition.name}: {payload_query(payload)[:50]}...")

        try:
            lifecycle.advance(RunPhase.RESOLVING_PROVIDER)
            service = await self.resolver.resolve()
            usage_before = dict(getattr(service, "token_usage", None) or {})

            context = RunContext(
                generator=RetryingGenerator(
                    service,
                    self.settings.retry_config,
                    cancel_event=cancel_event,
                    sleep=self._sleep,
                ),
                injector=self.injector,
                metrics=metrics,
                swarm_name=self.definition.name,
            )
            scheduler = Scheduler(graph, retained_context=self.definition.retained_context)
            outcome = await scheduler.run(state, context, lifecycle, cancel_event, on_round)
        except Exception as e:
            lifecycle.fail()
            logger.error(f"{self.definition.name} 执行失败 ({e.__class__.__name__}): {e}", exc_info=True)
            raise

        metrics.duration_seconds = time.perf_counter() - start_time
        usage_after = getattr(service, "token_usage", None) or {}
        metrics.token_usage = {
            key: usage_after.get(key, 0) - usage_before.get(key, 0)
            for key in ("prompt", "completion", "total")
        }

        final_state = outcome.state
        result = RunResult(
            run_id=run_id,
            report=final_state.get("report") or {},
            messages=outcome.messages,
            iterations=final_state["iteration"],
            provider=service.name,
            status=final_state["status"],
            verdict=final_state.get("merged_verdict"),
            metrics=metrics,
            trace=outcome.trace,
        )

        logger.info(
            f"{self.definition.name} 执行完成: {result.iterations} 遍, {metrics.rounds} 轮, "
            f"耗时 {metrics.duration_seconds:.2f}s"
        )

        if self.remember_result:
            self._remember(payload, result)
        return result

    def run(
        self,
        initial_payload: Any,
        max_iterations: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_round: Optional[RoundCallback] = None,
    ) -> RunResult:
        """同步运行，内部使用 asyncio.run()"""
        return asyncio.run(self.arun(initial_payload, max_iterations, cancel_event, on_round))

    def _remember(self, payload: Mapping[str, Any], result: RunResult) -> None:
        if not isinstance(self.injector, MemoryContextInjector) or result.verdict is None:
            return
        query = payload_query(payload)
        summary = result.verdict.summary or "no summary"
        self.injector.remember(
            f"{self.definition.name}:{query[:80]}",
            f"{query} -> {summary}",
        )

    def get_graph_visualization(self) -> str:
        """
        获取图的 Mermaid 可视化表示

        Returns:
            Mermaid 格式的图描述
        """
        from agentswarm.utils.visualizer import generate_mermaid_graph
        return generate_mermaid_graph(self.graph)

    def reset(self) -> None:
        """重置系统状态：清空 LLM 缓存、记忆和编译后的图"""
        LLMFactory.clear_cache()
        if isinstance(self.injector, MemoryContextInjector):
            self.injector.memory.clear()
        self._graph = None
        logger.info("系统已重置")


def run_swarm(
    name: str,
    payload: Any,
    max_iterations: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
    **system_options: Any,
) -> RunResult:
    """
    便捷函数：按名称运行一个已注册的 Swarm

    Args:
        name: Swarm 名称
        payload: 初始输入
        max_iterations: 最大遍数
        cancel_event: 可选的取消事件
        **system_options: 传给 SwarmSystem 的参数（settings、services 等）

    Returns:
        RunResult
    """
    system = SwarmSystem(get_swarm(name), **system_options)
    return system.run(payload, max_iterations=max_iterations, cancel_event=cancel_event)
