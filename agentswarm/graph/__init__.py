"""
图模块
======

提供编排引擎的状态、边与调度。

核心组件：
- SwarmState / merge: 共享状态及其合并策略
- extract: 容错的结构化解析
- ConditionalEdge / should_iterate: 迭代或结束的判定
- GraphBuilder / SwarmGraph / SwarmSystem: 见 agentswarm.graph.builder
- Scheduler: 见 agentswarm.graph.scheduler
"""

from agentswarm.graph.state import (
    CARRIED_FIELDS,
    STATE_SCHEMA,
    FieldSpec,
    MergePolicy,
    StateSchema,
    SwarmState,
    create_initial_state,
    merge,
    reset_for_next_pass,
    snapshot,
)
from agentswarm.graph.extractor import extract, strip_fences
from agentswarm.graph.edges import (
    END,
    START,
    ConditionalEdge,
    Edge,
    route_after_assembly,
    should_iterate,
)

__all__ = [
    # State
    "CARRIED_FIELDS",
    "STATE_SCHEMA",
    "FieldSpec",
    "MergePolicy",
    "StateSchema",
    "SwarmState",
    "create_initial_state",
    "merge",
    "reset_for_next_pass",
    "snapshot",
    # Extractor
    "extract",
    "strip_fences",
    # Edges
    "END",
    "START",
    "ConditionalEdge",
    "Edge",
    "route_after_assembly",
    "should_iterate",
]
