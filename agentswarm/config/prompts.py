"""
提示词模板管理模块
==================
集中管理引擎层面的提示词模板（探测、审核框架、上下文注入、迭代反馈）。

各领域 Swarm 的专业提示词在 agentswarm.swarms 中声明，这里只放与领域无关的部分。
"""
from string import Template
from typing import Dict, Optional


class PromptTemplates:
    HEALTH_CHECK_SYSTEM = "Reply with OK"
    HEALTH_CHECK_USER = "test"

    SUPERVISOR_REVIEW = """$header

Specialist Outputs:
$specialist_outputs"""

    SPECIALIST_SECTION = """=== $agent ===
$content"""

    MEMORY_CONTEXT = """

--- Relevant context from previous sessions ---
$memories
--- End of context ---"""

    REFINEMENT_NOTE = """

This is refinement pass $iteration. The previous pass was reviewed with this verdict:
$summary
Issues to address:
$issues"""

    _custom_templates: Dict[str, str] = {}

    @classmethod
    def get(cls, template_name: str, **kwargs) -> str:
        if template_name in cls._custom_templates:
            template_str = cls._custom_templates[template_name]
        else:
            template_str = getattr(cls, template_name, None)
            if not isinstance(template_str, str):
                raise ValueError(f"未知的模板名称: {template_name}")
        if kwargs:
            return Template(template_str).safe_substitute(**kwargs)
        return template_str

    @classmethod
    def set_custom(cls, template_name: str, template_str: str) -> None:
        cls._custom_templates[template_name] = template_str

    @classmethod
    def reset_custom(cls, template_name: Optional[str] = None) -> None:
        if template_name:
            cls._custom_templates.pop(template_name, None)
        else:
            cls._custom_templates.clear()

