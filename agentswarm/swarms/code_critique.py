"""
代码评审 Swarm
==============

四个 Specialist 从入口并发评审调用方提供的代码，由 supervisor 合并：

    [architect, security, ux, perf] -> supervisor -> assembler

总分按权重计算：安全 30%、架构 25%、性能 25%、UX 20%。
supervisor 给出 needs_reflection 时再跑一遍，第二遍起 supervisor 改用反思提示词。
"""

from typing import Any, Dict, List

from agentswarm.agents.assembler import AssemblyInputs, clamp_score
from agentswarm.agents.base import NodeInputs
from agentswarm.graph.extractor import get_dict, get_list, get_number, get_str
from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.types import GenerationOptions, NodeKind

ARCHITECT = "architect"
SECURITY = "security"
UX = "ux"
PERF = "perf"
SUPERVISOR = "supervisor"
ASSEMBLER = "assembler"

AGENTS = (ARCHITECT, SECURITY, UX, PERF)

SCORE_WEIGHTS: Dict[str, float] = {
    SECURITY: 0.30,
    ARCHITECT: 0.25,
    PERF: 0.25,
    UX: 0.20,
}

NEUTRAL_SCORE = 50
REFLECTION_THRESHOLD = 50
CODE_EXCERPT_LIMIT = 2000
SUMMARY_LIMIT = 300
FINDING_DETAIL_LIMIT = 500

SEVERITY_RANK = {"error": 0, "warning": 1, "info": 2}

_FINDING_FORMAT = """Return your critique as JSON:
{
  "agent": "%s",
  "score": <0-100>,
  "findings": [
    { "severity": "error|warning|info", "title": "<short title>", "detail": "<explanation>", "suggestion": "<fix>" }
  ],
  "summary": "<1-2 sentence summary>"
}
Return ONLY valid JSON, no markdown fences."""

SYSTEM_PROMPTS: Dict[str, str] = {
    ARCHITECT: """You are a senior software architect specializing in scalability and system design.
Analyze the provided code and critique ONLY architecture and scalability concerns:
- Design patterns (appropriate? misused?)
- Coupling and cohesion
- Scalability bottlenecks (N+1 queries, unbounded lists, missing pagination)
- Separation of concerns
- API contract design
- State management patterns

""" + _FINDING_FORMAT % ARCHITECT,

    SECURITY: """You are a security engineer specializing in application security (OWASP Top 10).
Analyze the provided code and critique ONLY security vulnerabilities:
- Injection (SQL, NoSQL, command, XSS)
- Authentication / authorization flaws
- Sensitive data exposure (keys, tokens, PII in logs)
- CSRF, SSRF, open redirects
- Insecure deserialization
- Missing input validation / sanitization
- Dependency vulnerabilities

""" + _FINDING_FORMAT % SECURITY,

    UX: """You are a UX engineer and frontend specialist.
Analyze the provided code and critique ONLY user experience and frontend concerns:
- Accessibility (a11y): ARIA, keyboard nav, contrast, focus management
- Responsive design and mobile handling
- Loading states, error states, empty states
- Form validation and user feedback
- Component composition and reusability
- Interaction patterns and affordances

If the code is backend-only with no UI, note that and give a neutral score.

""" + _FINDING_FORMAT % UX,

    PERF: """You are a performance engineer specializing in runtime optimization.
Analyze the provided code and critique ONLY performance concerns:
- Time complexity of algorithms and loops
- Memory leaks and excessive allocations
- Unnecessary re-renders or recomputations
- Missing memoization, caching, or debouncing
- Bundle size impact (large imports, unused deps)
- Database query efficiency (N+1, missing indexes, large payloads)
- Async patterns (waterfall vs parallel, missing cancellation)

""" + _FINDING_FORMAT % PERF,
}

_REPORT_FORMAT = """{
  "overall_score": <0-100 weighted>,
  "summary": "<executive summary, 2-3 sentences>",
  "agent_scores": { "architect": <n>, "security": <n>, "ux": <n>, "perf": <n> },
  "findings": [
    { "severity": "error|warning|info", "agent": "<source agent>", "title": "<title>", "detail": "<detail>", "suggestion": "<fix>" }
  ],
  "needs_reflection": %s
}
Return ONLY valid JSON, no markdown fences."""

MERGE_PROMPT = """You are the critique swarm supervisor. You have received specialist critiques from 4 agents (Architect, Security, UX, Performance).

Your job:
1. Merge all findings into a unified Critique Report
2. Deduplicate overlapping findings
3. Rank by severity (errors first, then warnings, then info)
4. Compute an overall weighted score:
   - Security: 30% weight
   - Architecture: 25% weight
   - Performance: 25% weight
   - UX: 20% weight
5. Write a concise executive summary

Return the merged report as JSON:
""" + _REPORT_FORMAT % "<true if any agent scored below 50 or any critical security error>"

REFLECTION_PROMPT = """You are the critique swarm supervisor performing a reflection pass.

The previous critique round had critical issues (needs_reflection=true). Review the specialist findings again with fresh eyes:
- Were any findings false positives?
- Did specialists miss anything obvious given the other agents' findings?
- Are the severity levels accurate?
- Are suggestions actionable?

Produce a FINAL merged report (same JSON format), correcting any issues.

Return the final report as JSON:
""" + _REPORT_FORMAT % "false"


def needs_reflection(payload: Dict[str, Any]) -> bool:
    """
    读取 needs_reflection

    没有给出该字段时，任一评分低于 50 即需要反思。
    """
    if "needs_reflection" in payload:
        value = payload["needs_reflection"]
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return value is True

    scores = get_dict(payload, "agent_scores")
    return any(
        get_number(scores, agent, NEUTRAL_SCORE) < REFLECTION_THRESHOLD
        for agent in AGENTS if agent in scores
    )


def code_prompt(inputs: NodeInputs) -> str:
    return inputs.field("code")


def supervisor_prompt(inputs: NodeInputs) -> str:
    return REFLECTION_PROMPT if inputs.iteration > 0 else MERGE_PROMPT


def supervisor_header(inputs: NodeInputs) -> str:
    return f"Code being critiqued:\n{inputs.field('code')[:CODE_EXCERPT_LIMIT]}"


def agent_scores(inputs: AssemblyInputs, merged: Dict[str, Any]) -> Dict[str, float]:
    """
    各 Specialist 的评分

    优先取 supervisor 合并后的评分，其次取 Specialist 自己的评分，都没有时为 50。
    """
    reported = get_dict(merged, "agent_scores")
    scores: Dict[str, float] = {}
    for agent in AGENTS:
        section = inputs.section(agent)
        if agent in reported:
            value = get_number(reported, agent, NEUTRAL_SCORE)
        else:
            value = get_number(section, "score", NEUTRAL_SCORE)
        scores[agent] = clamp_score(value, 0, 100)
    return scores


def weighted_score(scores: Dict[str, float]) -> float:
    return round(sum(SCORE_WEIGHTS[agent] * scores[agent] for agent in AGENTS), 1)


def severity_rank(finding: Dict[str, Any]) -> int:
    severity = str(finding.get("severity", "")).strip().lower()
    return SEVERITY_RANK.get(severity, len(SEVERITY_RANK))


def collect_findings(inputs: AssemblyInputs, merged: Dict[str, Any]) -> List[Dict[str, Any]]:
    """合并后的发现按严重程度排序；supervisor 没有给出时从各 Specialist 收集"""
    findings = [item for item in get_list(merged, "findings") if isinstance(item, dict)]

    if not findings:
        for agent in AGENTS:
            if agent not in inputs.results:
                continue
            if inputs.ok(agent):
                findings.extend(
                    {**item, "agent": agent}
                    for item in get_list(inputs.section(agent), "findings")
                    if isinstance(item, dict)
                )
            else:
                findings.append({
                    "severity": "info",
                    "agent": agent,
                    "title": f"{agent} analysis",
                    "detail": inputs.results[agent][:FINDING_DETAIL_LIMIT],
                    "suggestion": "",
                })

    return sorted(findings, key=severity_rank)


def assemble_report(inputs: AssemblyInputs) -> Dict[str, Any]:
    verdict = inputs.verdict
    merged = verdict.payload if verdict is not None and verdict.parsed else {}

    if verdict is None:
        summary = ""
    elif verdict.parsed:
        summary = verdict.summary
    else:
        summary = get_str(verdict.payload, "raw")[:SUMMARY_LIMIT]

    scores = agent_scores(inputs, merged)
    return {
        "overall_score": weighted_score(scores),
        "summary": summary or None,
        "agent_scores": scores,
        "findings": collect_findings(inputs, merged),
        "needs_reflection": verdict.needs_iteration if verdict is not None else False,
        "reflected": inputs.iteration > 0,
    }


REPORT_DEFAULTS: Dict[str, Any] = {
    "summary": "Critique swarm failed to produce a report.",
    "findings": [],
}

SPECIALIST_OPTIONS = GenerationOptions(temperature=0.3, max_tokens=4096)


CODE_CRITIQUE = SwarmDefinition(
    name="code_critique",
    description="Architecture, security, UX and performance critique of supplied code, with a reflection pass",
    payload_key="code",
    payload_defaults={"code": ""},
    nodes=(
        *(
            NodeSpec.of(agent, NodeKind.SPECIALIST,
                        system_prompt=SYSTEM_PROMPTS[agent], template=code_prompt,
                        options=SPECIALIST_OPTIONS)
            for agent in AGENTS
        ),
        NodeSpec.of(SUPERVISOR, NodeKind.SUPERVISOR, after=AGENTS,
                    system_prompt=supervisor_prompt, header=supervisor_header,
                    reads=AGENTS, decide=needs_reflection,
                    options=GenerationOptions(temperature=0.2, max_tokens=4096)),
        NodeSpec.of(ASSEMBLER, NodeKind.ASSEMBLER, after=[SUPERVISOR],
                    reducer=assemble_report, defaults=REPORT_DEFAULTS, label="Code critique"),
    ),
)
