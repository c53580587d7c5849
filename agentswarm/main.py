"""
AgentSwarm 主入口
=================

提供命令行接口和程序入口点。
"""

import argparse
import json
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from agentswarm import __version__
from agentswarm.config.settings import Settings, get_settings
from agentswarm.exceptions import ProviderUnavailable, SwarmError
from agentswarm.graph.builder import SwarmSystem
from agentswarm.swarms import get_swarm, list_swarms
from agentswarm.types import RoundRecord, RunResult
from agentswarm.utils.logger import get_logger, set_log_level, setup_logger
from agentswarm.utils.visualizer import ExecutionVisualizer, messages_by_agent

console = Console()
logger = get_logger(__name__)


def print_banner(swarm_name: str) -> None:
    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║                 AgentSwarm Orchestrator v{__version__:<20}║
╚══════════════════════════════════════════════════════════════╝
    swarm: {swarm_name}
    """
    console.print(banner, style="bold blue")


def print_swarms() -> None:
    table = Table(title="可用的 Swarm", show_header=True, header_style="bold magenta")
    table.add_column("名称", style="cyan")
    table.add_column("节点数", style="green")
    table.add_column("说明")
    for name in list_swarms():
        definition = get_swarm(name)
        table.add_row(name, str(len(definition.nodes)), definition.description)
    console.print(table)


def print_result(result: RunResult) -> None:
    """打印执行结果"""
    console.print("\n")
    report = json.dumps(result.report, ensure_ascii=False, indent=2, default=str)
    console.print(Panel(
        Syntax(report, "json", word_wrap=True),
        title="[bold green]✅ 报告[/bold green]",
        border_style="green",
    ))

    table = Table(title="执行指标", show_header=True, header_style="bold magenta")
    table.add_column("指标", style="cyan")
    table.add_column("值", style="green")

    metrics = result.metrics
    table.add_row("提供商", result.provider)
    table.add_row("遍数", str(result.iterations))
    table.add_row("调度轮数", str(metrics.rounds))
    table.add_row("生成调用", str(metrics.generation_calls))
    table.add_row("解析失败", str(metrics.parse_failures))
    table.add_row("总耗时", f"{metrics.duration_seconds:.2f} 秒")
    if metrics.token_usage.get("total"):
        table.add_row("Token 消耗", str(metrics.token_usage["total"]))
    console.print(table)


def print_trace(result: RunResult) -> None:
    visualizer = ExecutionVisualizer()
    console.print(Panel(visualizer.generate_text_trace(result), title="执行轨迹"))
    counts = ", ".join(f"{agent}×{count}" for agent, count in messages_by_agent(result).items())
    console.print(f"[dim]消息: {counts}[/dim]")


def run_once(
    system: SwarmSystem,
    idea: str,
    settings: Settings,
    max_iterations: Optional[int] = None,
    as_json: bool = False,
    output_file: Optional[str] = None,
) -> RunResult:
    """单任务模式"""
    if as_json:
        result = system.run(idea, max_iterations=max_iterations)
        console.print_json(result.model_dump_json())
    else:
        console.print(f"[bold]输入: {idea}[/bold]\n")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            prog_task = progress.add_task("正在解析提供商...", total=None)

            def on_round(record: RoundRecord) -> None:
                progress.update(
                    prog_task,
                    description=f"第 {record.iteration} 遍 round {record.round}: {', '.join(record.nodes)}",
                )

            result = system.run(idea, max_iterations=max_iterations, on_round=on_round)
            progress.update(prog_task, description=f"完成 (耗时 {result.metrics.duration_seconds:.2f}s)")

        print_result(result)
        if settings.debug_mode:
            print_trace(result)

    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(result.model_dump_json(indent=2))
        console.print(f"\n[green]结果已保存至: {output_file}[/green]")
    return result


def interactive_mode(system: SwarmSystem, settings: Settings, max_iterations: Optional[int]) -> None:
    """交互式模式"""
    console.print("\n[bold cyan]进入交互模式 (输入 'quit' 或 'exit' 退出)[/bold cyan]\n")

    while True:
        try:
            user_input = Prompt.ask("\n[bold green]请输入您的想法[/bold green]")

            if user_input.lower() in ("quit", "exit", "q"):
                console.print("[yellow]感谢使用，再见！[/yellow]")
                break

            if not user_input.strip():
                console.print("[yellow]输入不能为空，请重新输入[/yellow]")
                continue

            run_once(system, user_input, settings, max_iterations=max_iterations)

        except KeyboardInterrupt:
            console.print("\n[yellow]操作已取消[/yellow]")
            continue
        except SwarmError as e:
            console.print(f"[red]执行出错: {e}[/red]")
            if settings.debug_mode:
                console.print_exception()
            if isinstance(e, ProviderUnavailable):
                break


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        description="AgentSwarm multi-agent orchestration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 列出可用的 Swarm
  agentswarm --list

  # 单任务模式
  agentswarm --swarm music_edu --idea "Ear training app for guitarists"

  # 评审一段代码，只输出 JSON 结果
  agentswarm --swarm code_critique --idea "$(cat app.py)" --json

  # 查看图结构
  agentswarm --swarm music_edu --graph
        """
    )

    parser.add_argument("--swarm", "-s", type=str, default="music_edu", help="要运行的 Swarm")
    parser.add_argument("--idea", "-i", type=str, help="初始输入；不提供时进入交互模式")
    parser.add_argument("--max-iterations", "-m", type=int, default=None, help="最大遍数")
    parser.add_argument("--list", "-l", action="store_true", help="列出可用的 Swarm")
    parser.add_argument("--graph", "-g", action="store_true", help="输出图的 Mermaid 描述")
    parser.add_argument("--json", "-j", action="store_true", help="以 JSON 输出结果")
    parser.add_argument("--output", "-o", type=str, help="输出结果文件路径 (JSON 格式)")
    parser.add_argument("--debug", "-d", action="store_true", help="启用调试模式")
    parser.add_argument("--version", "-v", action="version", version=f"AgentSwarm v{__version__}")

    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    """主入口函数"""
    args = parse_args(argv)

    settings = get_settings()
    if args.debug:
        settings.debug_mode = True
    if args.max_iterations is not None and args.max_iterations < 1:
        console.print("[red]--max-iterations 必须至少为 1[/red]")
        return 2

    setup_logger(log_dir=settings.log_dir, debug=settings.debug_mode)
    if args.json and not settings.debug_mode:
        # JSON 模式只输出结果
        set_log_level("warning")

    if args.list:
        print_swarms()
        return 0

    try:
        definition = get_swarm(args.swarm)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        return 2

    system = SwarmSystem(definition, settings=settings)

    if args.graph:
        console.print(system.get_graph_visualization())
        return 0

    if not args.json:
        print_banner(definition.name)

    try:
        if args.idea:
            run_once(
                system,
                args.idea,
                settings,
                max_iterations=args.max_iterations,
                as_json=args.json,
                output_file=args.output,
            )
        else:
            interactive_mode(system, settings, args.max_iterations)
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]程序被用户中断[/yellow]")
        return 130
    except SwarmError as e:
        console.print(f"[red]执行失败: {e}[/red]")
        if settings.debug_mode:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
