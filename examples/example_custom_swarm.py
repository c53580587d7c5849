"""
示例 2：自定义 Swarm
====================

演示如何声明一个新的 Swarm：两个并行的 Specialist、一个 Supervisor 和
一个带自定义 reducer 的 Assembler，并在运行前输出图结构。

运行方式：
    python -m examples.example_custom_swarm
"""

import os
import sys

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from agentswarm.agents import AssemblyInputs, clamp_score
from agentswarm.agents.base import NodeInputs
from agentswarm.exceptions import SwarmError
from agentswarm.graph.builder import SwarmSystem
from agentswarm.graph.extractor import get_list
from agentswarm.swarms import register_swarm
from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.types import NodeKind
from agentswarm.utils.logger import setup_logger

RULES_PROMPT = """You are a tabletop game designer.
Design the rules for the game. Return JSON:
{"rules": ["<rule>"], "turn_structure": "", "win_condition": ""}
Return ONLY valid JSON."""

ART_PROMPT = """You are an illustrator for card games.
Propose the visual direction. Return JSON:
{"style": "", "palette": [], "card_templates": ["<template>"]}
Return ONLY valid JSON."""


def rules_prompt(inputs: NodeInputs) -> str:
    return f"Game idea: {inputs.query}\nPlayers: {inputs.field('players', '2')}"


def art_prompt(inputs: NodeInputs) -> str:
    return f"Game idea: {inputs.query}"


def assemble_card_game(inputs: AssemblyInputs) -> dict:
    rules = inputs.section("rules")
    art = inputs.section("art")
    return {
        "rules": get_list(rules, "rules"),
        "win_condition": rules.get("win_condition"),
        "style": art.get("style"),
        "card_templates": get_list(art, "card_templates"),
        "completeness": clamp_score(len(get_list(rules, "rules")) + len(get_list(art, "card_templates"))),
        "verdict": inputs.verdict.summary if inputs.verdict is not None else None,
    }


CARD_GAME = SwarmDefinition(
    name="card_game",
    description="Rules and art in parallel, reviewed by a supervisor",
    payload_defaults={"players": "2"},
    nodes=(
        NodeSpec.of("rules", NodeKind.SPECIALIST, system_prompt=RULES_PROMPT, template=rules_prompt),
        NodeSpec.of("art", NodeKind.SPECIALIST, system_prompt=ART_PROMPT, template=art_prompt),
        NodeSpec.of("review", NodeKind.SUPERVISOR, after=["rules", "art"], reads=["rules", "art"]),
        NodeSpec.of("assembler", NodeKind.ASSEMBLER, after=["review"],
                    reducer=assemble_card_game,
                    defaults={"win_condition": "Most points after 10 rounds", "verdict": "No review."},
                    label="Card game"),
    ),
)


def main():
    """运行自定义 Swarm 示例"""
    console = Console()
    setup_logger(debug=False)

    register_swarm(CARD_GAME)
    system = SwarmSystem(CARD_GAME)

    console.print(Panel(
        Syntax(system.get_graph_visualization(), "text"),
        title="图结构 (Mermaid)",
    ))

    try:
        result = system.run("A cooperative card game about lighthouse keepers", max_iterations=2)
    except SwarmError as e:
        console.print(f"[red]执行出错: {e}[/red]")
        return

    console.print_json(data=result.report)
    console.print(
        f"\n[dim]提供商 {result.provider}，{result.iterations} 遍，"
        f"{result.metrics.rounds} 轮，{result.metrics.generation_calls} 次生成调用[/dim]"
    )


if __name__ == "__main__":
    main()
