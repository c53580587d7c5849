"""
示例 1：音乐教育应用设计
========================

演示 music_edu Swarm：六个 Specialist 分四轮并发执行，Supervisor 做一致性检查，
Assembler 汇总成带评分的报告。

运行方式：
    python -m examples.example_music_edu
"""

import os
import sys

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agentswarm.config.settings import get_settings
from agentswarm.exceptions import SwarmError
from agentswarm.graph.builder import SwarmSystem
from agentswarm.swarms import get_swarm
from agentswarm.utils.logger import setup_logger
from agentswarm.utils.visualizer import print_execution_trace


def main():
    """运行音乐教育示例"""
    console = Console()

    # 设置日志
    setup_logger(debug=False)

    console.print(Panel(
        "[bold blue]示例 1: 音乐教育应用设计[/bold blue]\n\n"
        "乐理分析、虚拟乐器、作曲、课程、声学计算与商业化建议",
        title="AgentSwarm Demo"
    ))

    payload = {
        "idea": "An ear training app for self-taught guitarists",
        "focus_area": "intervals and chord recognition",
        "difficulty": "beginner",
    }

    console.print(f"\n[bold]输入:[/bold] {payload['idea']}")
    console.print("\n[dim]正在处理...[/dim]\n")

    try:
        settings = get_settings()
        system = SwarmSystem(get_swarm("music_edu"), settings=settings)
        result = system.run(payload, max_iterations=2)
    except SwarmError as e:
        console.print(f"[red]执行出错: {e}[/red]")
        return

    scores = result.report["music_edu_score"]
    table = Table(title="教育评分", show_header=True, header_style="bold magenta")
    table.add_column("维度", style="cyan")
    table.add_column("分数", style="green")
    for dimension, score in scores.items():
        table.add_row(dimension, str(score))
    console.print(table)

    console.print(f"\n[bold]概念数:[/bold] {len(result.report['concepts'])}")
    console.print(f"[bold]课程数:[/bold] {len(result.report['lessons'])}")
    console.print(f"[bold]结论:[/bold] {result.report['verdict']}")

    print_execution_trace(result)


if __name__ == "__main__":
    main()
