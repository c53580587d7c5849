"""
节点模块
========

提供三种图节点及其注册表：

- SpecialistNode: 发起一次生成调用，写入 specialist_results
- SupervisorNode: 汇总上游结果，给出是否迭代的结论
- AssemblerNode: 折叠状态为报告，递增 iteration
"""

from agentswarm.agents.base import (
    BaseNode,
    NodeInputs,
    NodeRegistry,
    PromptTemplate,
    RunContext,
    register_node,
)
from agentswarm.agents.specialist import SpecialistNode
from agentswarm.agents.supervisor import SupervisorNode, build_verdict
from agentswarm.agents.assembler import (
    AssemblerNode,
    AssemblyInputs,
    clamp_score,
    collect_sections,
    fill_defaults,
    mean_score,
)

__all__ = [
    "BaseNode",
    "NodeInputs",
    "NodeRegistry",
    "PromptTemplate",
    "RunContext",
    "register_node",
    "SpecialistNode",
    "SupervisorNode",
    "build_verdict",
    "AssemblerNode",
    "AssemblyInputs",
    "clamp_score",
    "collect_sections",
    "fill_defaults",
    "mean_score",
]
