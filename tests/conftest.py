"""
Pytest 配置文件
===============

定义测试固件和通用配置。

节点通过系统提示词的第一行 "node:<id>" 被脚本化服务识别，
因此测试可以为每个节点单独指定响应、失败次数和延迟。
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from agentswarm.config.prompts import PromptTemplates
from agentswarm.config.settings import RetryConfig, Settings
from agentswarm.graph.builder import SwarmSystem
from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.types import GenerationOptions, NodeKind

Response = Union[str, Callable[[str], str]]


def node_key(system_prompt: str) -> str:
    if system_prompt.startswith(PromptTemplates.HEALTH_CHECK_SYSTEM):
        return "health_check"
    first_line = system_prompt.split("\n", 1)[0]
    if first_line.startswith("node:"):
        return first_line[len("node:"):].strip()
    return "other"


class ScriptedService:
    """
    脚本化的生成服务

    Args:
        name: 提供商名称
        responses: 节点 -> 响应文本（或根据用户消息生成响应的函数）
        failures: 节点 -> 失败次数，-1 表示一直失败
        delays: 节点 -> 返回前等待的秒数
        healthy: 探测是否成功
        prompts: 节点 -> 完整系统提示词，用于识别不以 "node:" 开头的节点
    """

    def __init__(
        self,
        name: str = "fake",
        responses: Optional[Dict[str, Response]] = None,
        failures: Optional[Dict[str, int]] = None,
        delays: Optional[Dict[str, float]] = None,
        healthy: bool = True,
        prompts: Optional[Dict[str, str]] = None,
    ):
        self._name = name
        self._keys = {prompt: node_id for node_id, prompt in (prompts or {}).items()}
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.healthy = healthy
        self.calls: List[Tuple[str, str, str, Optional[GenerationOptions]]] = []
        self.started: List[str] = []
        self.finished: List[str] = []
        self.events: List[Tuple[str, str]] = []
        self.token_usage = {"prompt": 0, "completion": 0, "total": 0}

    @property
    def name(self) -> str:
        return self._name

    def calls_for(self, key: str) -> List[Tuple[str, str, str, Optional[GenerationOptions]]]:
        return [call for call in self.calls if call[0] == key]

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        options: Optional[GenerationOptions] = None,
    ) -> str:
        key = self._keys.get(system_prompt) or node_key(system_prompt)
        self.calls.append((key, system_prompt, user_message, options))

        if key == "health_check":
            if not self.healthy:
                raise ConnectionError(f"{self._name} is unreachable")
            return "OK"

        self.started.append(key)
        self.events.append(("start", key))
        delay = self.delays.get(key, 0)
        if delay:
            await asyncio.sleep(delay)

        remaining = self.failures.get(key, 0)
        if remaining:
            if remaining > 0:
                self.failures[key] = remaining - 1
            raise RuntimeError(f"{key} generation failed")

        self.finished.append(key)
        self.events.append(("end", key))
        self.token_usage["prompt"] += 10
        self.token_usage["completion"] += 5
        self.token_usage["total"] += 15

        response = self.responses.get(key, "{}")
        return response(user_message) if callable(response) else response


class SleepRecorder:
    """替代 asyncio.sleep，只记录退避时长"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def verdict_json(needs_iteration: bool, summary: str = "Looks consistent.", issues: Any = ()) -> str:
    return (
        '{"needs_iteration": %s, "summary": "%s", "issues": [%s]}'
        % (
            "true" if needs_iteration else "false",
            summary,
            ", ".join(f'"{issue}"' for issue in issues),
        )
    )


def rules_prompt(inputs) -> str:
    return f"Design the rules for: {inputs.query}"


def art_prompt(inputs) -> str:
    return f"Describe the card art for: {inputs.query}"


CARD_GAME = SwarmDefinition(
    name="card_game",
    description="Two specialists in parallel, one supervisor, one assembler",
    nodes=(
        NodeSpec.of("rules", NodeKind.SPECIALIST, system_prompt="node:rules", template=rules_prompt),
        NodeSpec.of("art", NodeKind.SPECIALIST, system_prompt="node:art", template=art_prompt),
        NodeSpec.of("review", NodeKind.SUPERVISOR, after=["rules", "art"],
                    system_prompt="node:review", reads=["rules", "art"]),
        NodeSpec.of("assembler", NodeKind.ASSEMBLER, after=["review"], label="Card game"),
    ),
)


@pytest.fixture
def mock_settings(tmp_path):
    """创建测试用配置"""
    return Settings(
        provider_priority="fake",
        debug_mode=True,
        max_iterations=2,
        log_dir=str(tmp_path / "logs"),
        enable_memory_context=False,
        retry_config=RetryConfig(max_attempts=3, base_delay_seconds=1.0),
    )


@pytest.fixture
def card_game():
    return CARD_GAME


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_system(mock_settings, sleep_recorder):
    """创建使用脚本化服务的 SwarmSystem"""

    def factory(definition: SwarmDefinition = CARD_GAME, *services: ScriptedService, **kwargs) -> SwarmSystem:
        return SwarmSystem(
            definition,
            settings=kwargs.pop("settings", mock_settings),
            services=list(services) or [ScriptedService()],
            sleep=kwargs.pop("sleep", sleep_recorder),
            **kwargs,
        )

    return factory


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """设置测试环境"""
    for key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "GROQ_API_KEY", "PROVIDER_PRIORITY"):
        monkeypatch.delenv(key, raising=False)
    PromptTemplates.reset_custom()
    yield
    PromptTemplates.reset_custom()
