"""
节点基类模块
============

定义所有图节点的基类、运行上下文和注册机制。

节点签名统一为 execute(state, context) -> 部分状态更新：
- 节点对状态是纯的，只读取快照并返回部分更新
- 外部调用只经过 context.generate()（重试包装 + 固定的提供商）
- 结构化解析只经过 agentswarm.graph.extractor
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
)

from agentswarm.exceptions import GraphDefinitionError
from agentswarm.llm.retry import RetryingGenerator
from agentswarm.memory.context import ContextInjector
from agentswarm.types import GenerationOptions, NodeKind, RunMetrics, Verdict
from agentswarm.utils.logger import get_logger


class NodeRegistry:
    """
    节点类型注册表

    声明式 Swarm 配置按节点种类查找实现类并实例化。
    """

    _nodes: Dict[NodeKind, Type["BaseNode"]] = {}

    @classmethod
    def register(cls, kind: NodeKind, node_class: Type["BaseNode"]) -> None:
        cls._nodes[kind] = node_class

    @classmethod
    def get_class(cls, kind: NodeKind) -> Optional[Type["BaseNode"]]:
        return cls._nodes.get(NodeKind(kind))

    @classmethod
    def create(cls, kind: NodeKind, node_id: str, **params: Any) -> "BaseNode":
        """
        按种类创建节点实例

        Args:
            kind: 节点种类
            node_id: 节点 ID
            **params: 传给节点构造函数的参数

        Returns:
            节点实例
        """
        node_class = cls.get_class(kind)
        if node_class is None:
            raise GraphDefinitionError(f"未注册的节点种类: {kind}")
        return node_class(node_id, **params)

    @classmethod
    def list_kinds(cls) -> List[NodeKind]:
        return list(cls._nodes.keys())


def register_node(kind: NodeKind) -> Callable:
    """
    节点注册装饰器

    使用方式：
        @register_node(NodeKind.SPECIALIST)
        class SpecialistNode(BaseNode):
            ...
    """
    def decorator(cls: Type["BaseNode"]) -> Type["BaseNode"]:
        NodeRegistry.register(kind, cls)
        return cls
    return decorator


def payload_query(payload: Mapping[str, Any]) -> str:
    """从初始输入中取出用于检索与提示的主文本"""
    for key in ("idea", "task", "query", "prompt", "code"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return json.dumps(dict(payload), ensure_ascii=False, default=str)


@dataclass(frozen=True)
class NodeInputs:
    """
    节点可见的数据

    只暴露初始输入和节点声明读取的上游结果；读取未声明的上游会抛出
    GraphDefinitionError，使每个节点的数据依赖显式且可检查。
    """
    node_id: str
    payload: Mapping[str, Any]
    results: Mapping[str, str]
    reads: Tuple[str, ...]
    verdict: Optional[Verdict]
    context: Mapping[str, Any]
    iteration: int

    @property
    def query(self) -> str:
        return payload_query(self.payload)

    def result(self, node_id: str, default: str = "N/A") -> str:
        if node_id not in self.reads:
            raise GraphDefinitionError(
                f"节点 {self.node_id} 读取了未声明的上游 {node_id}"
            )
        return self.results.get(node_id) or default

    def field(self, key: str, default: str = "") -> str:
        value = self.payload.get(key)
        if value is None:
            return default
        return value if isinstance(value, str) else str(value)


PromptTemplate = Callable[[NodeInputs], str]


@dataclass
class RunContext:
    """
    单次运行内共享的只读协作者与指标

    provider 在运行开始时固定，之后不再改变。
    """
    generator: RetryingGenerator
    injector: Optional[ContextInjector] = None
    metrics: RunMetrics = field(default_factory=RunMetrics)
    swarm_name: str = "swarm"

    @property
    def provider(self) -> str:
        return self.generator.provider

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[GenerationOptions] = None,
        label: str = "generation",
    ) -> str:
        try:
            return await self.generator.generate(system_prompt, user_message, options, label=label)
        finally:
            self.metrics.generation_calls = self.generator.calls

    def record_parse_failure(self, node_id: str) -> None:
        self.metrics.parse_failures += 1

    def record_duration(self, node_id: str, seconds: float) -> None:
        durations = self.metrics.node_durations
        durations[node_id] = durations.get(node_id, 0.0) + seconds


class BaseNode(ABC):
    """
    节点抽象基类

    属性:
        node_id: 节点 ID
        reads: 声明读取的上游节点 ID（保持声明顺序）
        reads_verdict: 是否读取 Supervisor 结论
        description: 节点描述
    """

    kind: NodeKind

    def __init__(
        self,
        node_id: str,
        reads: Iterable[str] = (),
        reads_verdict: bool = False,
        description: str = "",
    ):
        if not node_id or node_id.startswith("__"):
            raise GraphDefinitionError(f"非法的节点 ID: {node_id!r}")
        self.node_id = node_id
        self.read_order: Tuple[str, ...] = tuple(dict.fromkeys(reads))
        self.reads_verdict = reads_verdict
        self.description = description
        self.logger = get_logger(self.__class__.__name__)

    @property
    def reads(self) -> FrozenSet[str]:
        return frozenset(self.read_order)

    def build_inputs(self, state: Mapping[str, Any]) -> NodeInputs:
        results = state.get("specialist_results") or {}
        return NodeInputs(
            node_id=self.node_id,
            payload=state.get("payload") or {},
            results={key: results[key] for key in self.read_order if key in results},
            reads=self.read_order,
            verdict=state.get("merged_verdict") if self.reads_verdict else None,
            context=state.get("context") or {},
            iteration=state.get("iteration", 0),
        )

    async def invoke(self, state: Mapping[str, Any], context: RunContext) -> Dict[str, Any]:
        """
        执行节点逻辑

        记录耗时和日志；异常不在这里吞掉，由调度器终止本次运行。

        Args:
            state: 只读状态快照
            context: 运行上下文

        Returns:
            部分状态更新
        """
        start_time = time.perf_counter()
        self.logger.info(f"[Node] {self.node_id} 开始执行")

        try:
            partial = await self._execute(state, context)
        except Exception as e:
            self.logger.error(f"[Node] {self.node_id} 执行失败: {e}")
            raise
        finally:
            context.record_duration(self.node_id, time.perf_counter() - start_time)

        self.logger.info(
            f"[Node] {self.node_id} 执行完成，耗时 {time.perf_counter() - start_time:.2f}s"
        )
        return partial

    @abstractmethod
    async def _execute(self, state: Mapping[str, Any], context: RunContext) -> Dict[str, Any]:
        """子类实现具体逻辑"""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.node_id!r})"
