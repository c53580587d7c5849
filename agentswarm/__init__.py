"""
AgentSwarm
==========

多智能体编排引擎：按固定拓扑并发调用 Specialist，经 Supervisor 校验，
在有界的迭代次数内反复改进，最后由 Assembler 折叠成结构化报告。

使用示例：
    >>> from agentswarm import run_swarm
    >>> result = run_swarm("music_edu", "Ear training app for guitarists", max_iterations=1)
    >>> result.report["music_edu_score"]
"""

__version__ = "0.1.0"

from agentswarm.config.settings import Settings, get_settings
from agentswarm.exceptions import (
    GenerationFailure,
    GraphDefinitionError,
    ProviderUnavailable,
    RunCancelled,
    SwarmError,
)
from agentswarm.graph.builder import GraphBuilder, SwarmGraph, SwarmSystem, build_graph, run_swarm
from agentswarm.swarms import get_swarm, list_swarms
from agentswarm.types import RunResult

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "SwarmError",
    "ProviderUnavailable",
    "GenerationFailure",
    "RunCancelled",
    "GraphDefinitionError",
    "GraphBuilder",
    "SwarmGraph",
    "SwarmSystem",
    "build_graph",
    "run_swarm",
    "get_swarm",
    "list_swarms",
    "RunResult",
]
