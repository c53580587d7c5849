"""
Supervisor 节点
===============

负责汇总与校验多个 Specialist 的输出，给出包含 needs_iteration 的结论。
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from agentswarm.agents.base import (
    BaseNode,
    NodeInputs,
    PromptTemplate,
    RunContext,
    register_node,
)
from agentswarm.config.prompts import PromptTemplates
from agentswarm.exceptions import GraphDefinitionError
from agentswarm.graph.extractor import extract, get_dict, get_list, get_str
from agentswarm.types import AgentMessage, ExtractionResult, GenerationOptions, NodeKind, Verdict

DEFAULT_SUPERVISOR_OPTIONS = GenerationOptions(temperature=0.2, max_tokens=4096)

DEFAULT_SUPERVISOR_PROMPT = """You are the supervisor of a team of specialist agents.
Merge their outputs, check them for consistency and quality, and decide whether another pass is needed.

Return your review as JSON:
{
  "summary": "<verdict in 2-3 sentences>",
  "issues": ["<problem found>"],
  "quality_notes": ["<note>"],
  "needs_iteration": false
}
Return ONLY valid JSON, no markdown fences."""

IterationDecider = Callable[[Dict[str, Any]], bool]


def default_decide(payload: Dict[str, Any]) -> bool:
    """读取 needs_iteration（兼容 needsIteration），只认布尔 true 或字符串 "true" """
    value = payload.get("needs_iteration", payload.get("needsIteration", False))
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def collect_issues(payload: Dict[str, Any]) -> List[str]:
    issues = get_list(payload, "issues")
    for section in ("consistency_check", "validation"):
        issues.extend(get_list(get_dict(payload, section), "issues"))
    return [str(issue) for issue in issues]


def build_verdict(
    extraction: ExtractionResult,
    decide: IterationDecider = default_decide,
) -> Verdict:
    """
    从解析结果构建结论

    解析失败时结论为“不需要迭代”，原文保存在 payload["raw"]。

    Args:
        extraction: Supervisor 输出的解析结果
        decide: needs_iteration 判定函数

    Returns:
        Verdict
    """
    if not extraction.ok:
        return Verdict(needs_iteration=False, payload=extraction.payload, parsed=False)

    payload = extraction.payload
    return Verdict(
        needs_iteration=decide(payload),
        summary=get_str(payload, "summary") or get_str(payload, "verdict"),
        issues=collect_issues(payload),
        payload=payload,
        parsed=True,
    )


def default_header(inputs: NodeInputs) -> str:
    return f"Original request: {inputs.query}"


@register_node(NodeKind.SUPERVISOR)
class SupervisorNode(BaseNode):
    """
    Supervisor 节点

    读取声明的上游 Specialist 结果，拼接为审核提示，调用一次生成服务，
    返回 {"merged_verdict": verdict, "agent_messages": [message]}。
    """

    kind = NodeKind.SUPERVISOR

    def __init__(
        self,
        node_id: str,
        reads: Iterable[str] = (),
        system_prompt: Union[str, PromptTemplate] = DEFAULT_SUPERVISOR_PROMPT,
        header: Optional[PromptTemplate] = None,
        decide: Optional[IterationDecider] = None,
        options: Optional[GenerationOptions] = None,
        description: str = "",
    ):
        super().__init__(node_id, reads=reads, description=description)
        if not self.read_order:
            raise GraphDefinitionError(f"Supervisor {node_id} 必须声明至少一个审核对象")
        self.system_prompt = system_prompt
        self.header = header or default_header
        self.decide = decide or default_decide
        self.options = options or DEFAULT_SUPERVISOR_OPTIONS

    def build_system_prompt(self, inputs: NodeInputs) -> str:
        """system_prompt 可以是固定文本，也可以按遍数切换的模板函数"""
        if callable(self.system_prompt):
            return self.system_prompt(inputs)
        return self.system_prompt

    def build_review(self, inputs: NodeInputs) -> str:
        sections = [
            PromptTemplates.get(
                "SPECIALIST_SECTION",
                agent=node_id.upper(),
                content=inputs.results[node_id],
            )
            for node_id in inputs.reads
            if node_id in inputs.results
        ]
        return PromptTemplates.get(
            "SUPERVISOR_REVIEW",
            header=self.header(inputs),
            specialist_outputs="\n\n".join(sections) or "N/A",
        )

    async def _execute(self, state: Mapping[str, Any], context: RunContext) -> Dict[str, Any]:
        inputs = self.build_inputs(state)

        raw = await context.generate(
            self.build_system_prompt(inputs),
            self.build_review(inputs),
            self.options,
            label=self.node_id,
        )

        extraction = extract(raw)
        if not extraction.ok:
            context.record_parse_failure(self.node_id)
            self.logger.warning(f"[Node] {self.node_id} 结论无法解析，按不需要迭代处理")

        verdict = build_verdict(extraction, self.decide)
        self.logger.info(
            f"[Node] {self.node_id} 结论: needs_iteration={verdict.needs_iteration}, "
            f"问题 {len(verdict.issues)} 个"
        )

        return {
            "merged_verdict": verdict,
            "agent_messages": [
                AgentMessage(
                    agent=self.node_id,
                    content=raw,
                    parsed_payload=extraction.payload if extraction.ok else None,
                )
            ],
        }
