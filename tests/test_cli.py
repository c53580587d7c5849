"""
命令行与可视化测试
==================

测试 CLI 入口的返回码，以及执行轨迹的文本与 Mermaid 输出。
"""

import json
import logging
from unittest.mock import patch

import pytest

from agentswarm.main import main, parse_args, run_once
from agentswarm.utils.logger import NO_RUN, RunIdFilter, bind_run, current_run_id, set_log_level
from agentswarm.utils.visualizer import ExecutionVisualizer, messages_by_agent

from conftest import CARD_GAME, ScriptedService, verdict_json


@pytest.fixture
def card_result(make_system):
    service = ScriptedService(responses={"review": verdict_json(False, "Balanced.")})
    return make_system(CARD_GAME, service).run("A 2-player card game")


class TestCommandLine:
    """CLI 测试"""

    def test_parse_args(self):
        args = parse_args(["-s", "code_critique", "-i", "def f(): pass", "-m", "3", "--json"])
        assert args.swarm == "code_critique"
        assert args.idea == "def f(): pass"
        assert args.max_iterations == 3
        assert args.json is True

    def test_list(self, mock_settings, capsys):
        with patch("agentswarm.main.get_settings", return_value=mock_settings):
            assert main(["--list"]) == 0
        assert "music_edu" in capsys.readouterr().out

    def test_graph(self, mock_settings, capsys):
        with patch("agentswarm.main.get_settings", return_value=mock_settings):
            assert main(["--swarm", "code_critique", "--graph"]) == 0
        assert "flowchart TD" in capsys.readouterr().out

    def test_unknown_swarm(self, mock_settings):
        with patch("agentswarm.main.get_settings", return_value=mock_settings):
            assert main(["--swarm", "poetry", "--graph"]) == 2

    def test_invalid_max_iterations(self, mock_settings):
        with patch("agentswarm.main.get_settings", return_value=mock_settings):
            assert main(["--idea", "x", "--max-iterations", "0"]) == 2

    def test_run_failure_returns_1(self, mock_settings, make_system):
        failing = make_system(CARD_GAME, ScriptedService(healthy=False))
        with patch("agentswarm.main.get_settings", return_value=mock_settings), \
                patch("agentswarm.main.SwarmSystem", return_value=failing):
            assert main(["--idea", "card game"]) == 1

    def test_run_once_writes_output(self, make_system, mock_settings, tmp_path):
        system = make_system(CARD_GAME, ScriptedService())
        output = tmp_path / "result.json"

        result = run_once(system, "card game", mock_settings, as_json=True, output_file=str(output))

        saved = json.loads(output.read_text(encoding="utf-8"))
        assert saved["provider"] == "fake"
        assert saved["iterations"] == result.iterations == 1
        assert saved["status"] == "complete"


class TestExecutionVisualizer:
    """执行轨迹可视化测试"""

    def test_text_trace(self, card_result):
        trace = ExecutionVisualizer().generate_text_trace(card_result)
        assert "提供商: fake" in trace
        assert "pass 1 round 1: rules, art" in trace
        assert "pass 1 round 3: assembler" in trace

    def test_mermaid_rounds(self, card_result):
        mermaid = ExecutionVisualizer().generate_mermaid(card_result)
        assert "subgraph P1R1[pass 1 / round 1]" in mermaid
        assert "P1R1_rules[rules]" in mermaid
        assert "P1R3 --> END" in mermaid

    def test_summary(self, card_result):
        summary = ExecutionVisualizer().generate_summary(card_result)
        assert "✅ 完成" in summary
        assert "结论: Balanced." in summary

    def test_messages_by_agent(self, card_result):
        assert messages_by_agent(card_result) == {"rules": 1, "art": 1, "review": 1, "assembler": 1}


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []
        self.addFilter(RunIdFilter())

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured_records():
    """在根日志器上挂载带 RunIdFilter 的处理器"""
    root = logging.getLogger()
    handler = ListHandler()
    original_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    yield handler.records
    root.removeHandler(handler)
    root.setLevel(original_level)


class TestRunLogging:
    """运行级日志测试"""

    def test_bind_run_scopes_run_id(self):
        assert current_run_id() == NO_RUN
        with bind_run("outer") as outer:
            assert outer == current_run_id() == "outer"
            with bind_run() as inner:
                assert len(inner) == 8
                assert current_run_id() == inner
            assert current_run_id() == "outer"
        assert current_run_id() == NO_RUN

    def test_records_carry_run_id(self, make_system, captured_records):
        """测试并发节点任务的日志继承所属运行的 run_id"""
        result = make_system(CARD_GAME, ScriptedService()).run("card game")

        assert result.run_id
        node_records = [r for r in captured_records if r.name == "SpecialistNode"]
        scheduler_records = [r for r in captured_records if r.name == "agentswarm.graph.scheduler"]
        assert node_records and scheduler_records
        assert {r.run_id for r in node_records + scheduler_records} == {result.run_id}
        assert current_run_id() == NO_RUN

    def test_each_run_gets_its_own_id(self, make_system):
        system = make_system(CARD_GAME, ScriptedService())
        assert system.run("a").run_id != system.run("b").run_id

    def test_set_log_level(self):
        logger = logging.getLogger("agentswarm.test")
        set_log_level("error", "agentswarm.test")
        assert logger.level == logging.ERROR
        set_log_level("nonsense", "agentswarm.test")
        assert logger.level == logging.INFO
