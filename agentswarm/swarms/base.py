"""
Swarm 声明模块
==============

一个 Swarm 由一组节点声明组成：节点 ID、种类、上游依赖和构造参数。
声明本身不可变，由 agentswarm.graph.builder.build_graph() 编译为可执行图。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Tuple

from agentswarm.agents.base import BaseNode, NodeRegistry
from agentswarm.graph.edges import START
from agentswarm.types import NodeKind


@dataclass(frozen=True)
class NodeSpec:
    """
    节点声明

    Attributes:
        id: 节点 ID
        kind: 节点种类
        upstream: 上游节点 ID；为空表示从入口开始
        params: 传给节点构造函数的参数（提示词、模板、生成参数等）
    """
    id: str
    kind: NodeKind
    upstream: FrozenSet[str] = frozenset()
    params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, node_id: str, kind: NodeKind, after: Iterable[str] = (), **params: Any) -> "NodeSpec":
        upstream = frozenset(name for name in after if name != START)
        return cls(id=node_id, kind=NodeKind(kind), upstream=upstream, params=dict(params))

    def create(self) -> BaseNode:
        return NodeRegistry.create(self.kind, self.id, **dict(self.params))


@dataclass(frozen=True)
class SwarmDefinition:
    """
    Swarm 声明

    Attributes:
        name: Swarm 名称
        nodes: 节点声明（顺序即图的声明顺序）
        description: 简要说明
        payload_defaults: 初始输入中缺失字段的默认值
        retained_context: 进入下一遍时保留的上下文字段
        payload_key: 字符串输入存放的字段名
    """
    name: str
    nodes: Tuple[NodeSpec, ...]
    description: str = ""
    payload_defaults: Mapping[str, Any] = field(default_factory=dict)
    retained_context: Tuple[str, ...] = ("previous_verdict",)
    payload_key: str = "idea"

    def normalize_payload(self, payload: Any) -> Dict[str, Any]:
        """字符串输入视为 {payload_key: 文本}，再补上默认字段"""
        if isinstance(payload, str):
            payload = {self.payload_key: payload}
        elif payload is None:
            payload = {}
        elif not isinstance(payload, Mapping):
            raise TypeError(f"初始输入必须是字符串或映射，收到 {type(payload).__name__}")
        return {**self.payload_defaults, **payload}
