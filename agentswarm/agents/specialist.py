"""
Specialist 节点
===============

每次执行恰好发起一次外部生成调用，并把结果写入共享状态。
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from agentswarm.agents.base import (
    BaseNode,
    NodeInputs,
    PromptTemplate,
    RunContext,
    register_node,
)
from agentswarm.config.prompts import PromptTemplates
from agentswarm.graph.extractor import extract
from agentswarm.memory.context import safe_inject
from agentswarm.types import AgentMessage, GenerationOptions, NodeKind

DEFAULT_SPECIALIST_OPTIONS = GenerationOptions(temperature=0.3, max_tokens=8192)


def default_prompt(inputs: NodeInputs) -> str:
    """没有专用模板时：原始输入加上所有声明读取的上游结果"""
    parts = [inputs.query]
    for node_id in inputs.reads:
        parts.append(f"{node_id}:\n{inputs.result(node_id)}")
    if inputs.verdict is not None:
        parts.append(f"Supervisor Notes:\n{inputs.verdict.summary or 'N/A'}")
    return "\n\n".join(parts)


def refinement_note(inputs: NodeInputs) -> str:
    """非首遍时附加上一遍的 Supervisor 结论"""
    previous = inputs.context.get("previous_verdict")
    if inputs.iteration == 0 or not previous:
        return ""
    issues = previous.get("issues") or []
    return PromptTemplates.get(
        "REFINEMENT_NOTE",
        iteration=inputs.iteration + 1,
        summary=previous.get("summary") or "N/A",
        issues="\n".join(f"- {issue}" for issue in issues) or "- none listed",
    )


@register_node(NodeKind.SPECIALIST)
class SpecialistNode(BaseNode):
    """
    Specialist 节点

    流程：
    1. 以固定系统提示词为基础，经上下文注入增强
    2. 用类型化模板从 payload 与声明的上游结果构建用户消息
    3. 经重试包装调用生成服务
    4. 把原始文本和解析结果包装为消息记录

    返回 {"agent_messages": [message], "specialist_results": {node_id: raw}}。
    """

    kind = NodeKind.SPECIALIST

    def __init__(
        self,
        node_id: str,
        system_prompt: str = "",
        template: Optional[PromptTemplate] = None,
        reads: Iterable[str] = (),
        reads_verdict: bool = False,
        options: Optional[GenerationOptions] = None,
        refine: bool = True,
        description: str = "",
    ):
        super().__init__(node_id, reads=reads, reads_verdict=reads_verdict, description=description)
        self.system_prompt = system_prompt or f"You are the {node_id} specialist. Return ONLY valid JSON."
        self.template = template or default_prompt
        self.options = options or DEFAULT_SPECIALIST_OPTIONS
        self.refine = refine

    def build_messages(self, inputs: NodeInputs, context: RunContext) -> Dict[str, str]:
        system_prompt = safe_inject(context.injector, self.system_prompt, inputs.query)
        user_message = self.template(inputs)
        if self.refine:
            user_message += refinement_note(inputs)
        return {"system": system_prompt, "user": user_message}

    async def _execute(self, state: Mapping[str, Any], context: RunContext) -> Dict[str, Any]:
        inputs = self.build_inputs(state)
        prompt = self.build_messages(inputs, context)

        raw = await context.generate(
            prompt["system"],
            prompt["user"],
            self.options,
            label=self.node_id,
        )

        extraction = extract(raw)
        if not extraction.ok:
            context.record_parse_failure(self.node_id)
            self.logger.warning(f"[Node] {self.node_id} 输出不是有效 JSON，报告中该部分将使用默认值")

        message = AgentMessage(
            agent=self.node_id,
            content=raw,
            parsed_payload=extraction.payload if extraction.ok else None,
        )

        return {
            "agent_messages": [message],
            "specialist_results": {self.node_id: raw},
        }
