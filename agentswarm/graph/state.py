"""
状态定义模块
============

定义编排引擎共享状态的固定结构，以及每个字段的合并策略。

每个字段的合并策略在 STATE_SCHEMA 定义时一次性声明，运行期不会改变。
节点从不直接修改状态，只返回部分更新，由调度器在单一序列化点调用 merge()。

合并策略：
    replace:   后写覆盖
    append:    追加到有序序列
    map_union: 合并两个映射，重复键以右侧为准
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypedDict,
)

from agentswarm.types import AgentMessage, RunStatus, Verdict


class MergePolicy(str, Enum):
    REPLACE = "replace"
    APPEND = "append"
    MAP_UNION = "map_union"


@dataclass(frozen=True)
class FieldSpec:
    """状态字段声明"""
    name: str
    policy: MergePolicy
    default_factory: Callable[[], Any]
    monotonic: bool = False


class SwarmState(TypedDict, total=False):
    """
    共享状态

    字段说明：
        payload: 调用方提供的初始输入（规范化为字典）
        context: 跨遍保留的上下文，例如上一遍的 Supervisor 结论
        specialist_results: 节点 ID -> 原始文本输出
        agent_messages: 按完成顺序追加的消息记录
        merged_verdict: Supervisor 的合成结论
        report: Assembler 产出的最终报告
        iteration: 已完成的遍数，只增不减
        max_iterations: 遍数上限，运行开始时固定
        status: running / complete
    """
    payload: Dict[str, Any]
    context: Dict[str, Any]
    specialist_results: Dict[str, str]
    agent_messages: List[AgentMessage]
    merged_verdict: Optional[Verdict]
    report: Optional[Dict[str, Any]]
    iteration: int
    max_iterations: int
    status: RunStatus


class StateSchema:
    """
    固定字段集合及其合并策略

    使用示例：
        >>> schema = StateSchema([FieldSpec("log", MergePolicy.APPEND, list)])
        >>> schema.merge({"log": [1]}, {"log": [2]})
        {'log': [1, 2]}
    """

    def __init__(self, fields: Iterable[FieldSpec]):
        specs: Dict[str, FieldSpec] = {}
        for spec in fields:
            if spec.name in specs:
                raise ValueError(f"状态字段重复声明: {spec.name}")
            specs[spec.name] = spec
        self._fields: Mapping[str, FieldSpec] = MappingProxyType(specs)

    @property
    def fields(self) -> Mapping[str, FieldSpec]:
        return self._fields

    def policy(self, name: str) -> MergePolicy:
        return self._spec(name).policy

    def defaults(self) -> Dict[str, Any]:
        return {name: spec.default_factory() for name, spec in self._fields.items()}

    def merge(self, current: Mapping[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
        """
        按字段策略合并部分更新

        纯函数：不修改 current 与 partial，返回新的状态字典。

        Args:
            current: 当前状态
            partial: 节点返回的部分更新

        Returns:
            合并后的新状态

        Raises:
            KeyError: partial 中出现未声明的字段
            ValueError: 单调字段被减小，或字段值类型与策略不符
        """
        merged = dict(current)
        for name, value in partial.items():
            spec = self._spec(name)
            existing = merged.get(name, None)
            if existing is None:
                existing = spec.default_factory()

            if spec.policy is MergePolicy.APPEND:
                if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
                    raise ValueError(f"字段 {name} 使用 append 策略，更新值必须是序列")
                merged[name] = list(existing) + list(value)
            elif spec.policy is MergePolicy.MAP_UNION:
                if not isinstance(value, Mapping):
                    raise ValueError(f"字段 {name} 使用 map_union 策略，更新值必须是映射")
                merged[name] = {**existing, **value}
            else:
                if spec.monotonic and existing is not None and value < existing:
                    raise ValueError(f"字段 {name} 只增不减: {existing} -> {value}")
                merged[name] = value
        return merged

    def _spec(self, name: str) -> FieldSpec:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"未声明的状态字段: {name}") from None


STATE_SCHEMA = StateSchema([
    FieldSpec("payload", MergePolicy.REPLACE, dict),
    FieldSpec("context", MergePolicy.REPLACE, dict),
    FieldSpec("specialist_results", MergePolicy.MAP_UNION, dict),
    FieldSpec("agent_messages", MergePolicy.APPEND, list),
    FieldSpec("merged_verdict", MergePolicy.REPLACE, lambda: None),
    FieldSpec("report", MergePolicy.REPLACE, lambda: None),
    FieldSpec("iteration", MergePolicy.REPLACE, lambda: 0, monotonic=True),
    FieldSpec("max_iterations", MergePolicy.REPLACE, lambda: 2),
    FieldSpec("status", MergePolicy.REPLACE, lambda: RunStatus.RUNNING),
])

# 进入下一遍时保留的字段
CARRIED_FIELDS = ("payload", "context", "iteration", "max_iterations")


def merge(current: Mapping[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
    return STATE_SCHEMA.merge(current, partial)


def create_initial_state(
    payload: Mapping[str, Any],
    max_iterations: int = 2,
    context: Optional[Mapping[str, Any]] = None,
) -> SwarmState:
    """
    创建初始状态

    Args:
        payload: 规范化后的初始输入
        max_iterations: 最大遍数
        context: 初始上下文

    Returns:
        初始化的 SwarmState
    """
    if max_iterations < 1:
        raise ValueError("max_iterations 必须至少为 1")

    state = STATE_SCHEMA.defaults()
    state.update(
        payload=dict(payload),
        context=dict(context or {}),
        max_iterations=max_iterations,
    )
    return SwarmState(**state)


def reset_for_next_pass(
    state: Mapping[str, Any],
    context_updates: Optional[Mapping[str, Any]] = None,
) -> SwarmState:
    """
    为下一遍清空状态

    只保留 payload、context、iteration、max_iterations，其余字段恢复默认值。

    Args:
        state: 上一遍结束时的状态
        context_updates: 合并进 context 的额外上下文

    Returns:
        下一遍的起始状态
    """
    fresh = STATE_SCHEMA.defaults()
    for name in CARRIED_FIELDS:
        fresh[name] = state[name]
    if context_updates:
        fresh["context"] = {**state.get("context", {}), **context_updates}
    return SwarmState(**fresh)


def snapshot(state: Mapping[str, Any]) -> Mapping[str, Any]:
    """返回只读快照，供一轮内的并发节点读取"""
    return MappingProxyType(dict(state))
