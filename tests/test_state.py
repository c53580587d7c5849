"""
状态测试
========

测试共享状态的合并策略、初始化与跨遍重置。
"""

import pytest

from agentswarm.graph.state import (
    STATE_SCHEMA,
    FieldSpec,
    MergePolicy,
    StateSchema,
    create_initial_state,
    merge,
    reset_for_next_pass,
    snapshot,
)
from agentswarm.types import AgentMessage, RunStatus, Verdict


def message(agent: str, content: str = "") -> AgentMessage:
    return AgentMessage(agent=agent, content=content or agent)


class TestMerge:
    """合并策略测试"""

    def test_merge_does_not_mutate_inputs(self):
        """测试合并是纯函数"""
        state = create_initial_state({"idea": "x"})
        partial = {"specialist_results": {"a": "1"}, "agent_messages": [message("a")]}

        merged = merge(state, partial)

        assert state["specialist_results"] == {}
        assert state["agent_messages"] == []
        assert partial["specialist_results"] == {"a": "1"}
        assert len(partial["agent_messages"]) == 1
        assert merged["specialist_results"] == {"a": "1"}
        assert merged is not state

    def test_map_union_is_commutative_for_disjoint_keys(self):
        """测试不同节点写入的结果与合并顺序无关"""
        state = create_initial_state({})
        a = {"specialist_results": {"rules": "R"}}
        b = {"specialist_results": {"art": "A"}}

        left = merge(merge(state, a), b)
        right = merge(merge(state, b), a)

        assert left["specialist_results"] == right["specialist_results"] == {"rules": "R", "art": "A"}

    def test_map_union_right_wins_on_duplicate_key(self):
        state = create_initial_state({})
        merged = merge(merge(state, {"specialist_results": {"a": "old"}}), {"specialist_results": {"a": "new"}})
        assert merged["specialist_results"] == {"a": "new"}

    def test_append_keeps_merge_order(self):
        """测试 N 次追加后序列长度为 N 且保持合并顺序"""
        state = create_initial_state({})
        for index in range(5):
            state = merge(state, {"agent_messages": [message(f"n{index}")]})

        assert [m.agent for m in state["agent_messages"]] == [f"n{i}" for i in range(5)]

    def test_replace_overwrites(self):
        state = create_initial_state({})
        verdict = Verdict(needs_iteration=True, summary="again")
        merged = merge(state, {"merged_verdict": verdict, "status": RunStatus.COMPLETE})

        assert merged["merged_verdict"] is verdict
        assert merged["status"] is RunStatus.COMPLETE

    def test_unknown_field_raises_key_error(self):
        """测试未声明的字段"""
        with pytest.raises(KeyError):
            merge(create_initial_state({}), {"unexpected": 1})

    def test_iteration_is_monotonic(self):
        state = merge(create_initial_state({}), {"iteration": 2})
        with pytest.raises(ValueError):
            merge(state, {"iteration": 1})

    def test_append_rejects_non_sequence(self):
        with pytest.raises(ValueError):
            merge(create_initial_state({}), {"agent_messages": message("a")})

    def test_map_union_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            merge(create_initial_state({}), {"specialist_results": ["a"]})


class TestStateSchema:
    """StateSchema 测试"""

    def test_duplicate_field_rejected(self):
        with pytest.raises(ValueError):
            StateSchema([
                FieldSpec("log", MergePolicy.APPEND, list),
                FieldSpec("log", MergePolicy.REPLACE, list),
            ])

    def test_policies_are_declared_once(self):
        assert STATE_SCHEMA.policy("agent_messages") is MergePolicy.APPEND
        assert STATE_SCHEMA.policy("specialist_results") is MergePolicy.MAP_UNION
        assert STATE_SCHEMA.policy("report") is MergePolicy.REPLACE

        with pytest.raises(TypeError):
            STATE_SCHEMA.fields["report"] = FieldSpec("report", MergePolicy.APPEND, list)

    def test_custom_schema(self):
        schema = StateSchema([FieldSpec("log", MergePolicy.APPEND, list)])
        assert schema.merge({"log": [1]}, {"log": [2]}) == {"log": [1, 2]}
        assert schema.merge({}, {"log": [1]}) == {"log": [1]}


class TestInitialState:
    """初始状态测试"""

    def test_create_initial_state(self):
        state = create_initial_state({"idea": "card game"}, max_iterations=3)

        assert state["payload"] == {"idea": "card game"}
        assert state["iteration"] == 0
        assert state["max_iterations"] == 3
        assert state["status"] is RunStatus.RUNNING
        assert state["specialist_results"] == {}
        assert state["agent_messages"] == []
        assert state["merged_verdict"] is None
        assert state["report"] is None

    def test_max_iterations_must_be_positive(self):
        with pytest.raises(ValueError):
            create_initial_state({}, max_iterations=0)

    def test_defaults_are_not_shared(self):
        first = create_initial_state({})
        second = create_initial_state({})
        first["agent_messages"].append(message("a"))
        assert second["agent_messages"] == []


class TestResetForNextPass:
    """跨遍重置测试"""

    def test_reset_keeps_only_carried_fields(self):
        state = create_initial_state({"idea": "x"}, max_iterations=2, context={"k": "v"})
        state = merge(state, {
            "specialist_results": {"a": "1"},
            "agent_messages": [message("a")],
            "merged_verdict": Verdict(needs_iteration=True),
            "report": {"done": True},
            "iteration": 1,
        })

        fresh = reset_for_next_pass(state)

        assert fresh["payload"] == {"idea": "x"}
        assert fresh["context"] == {"k": "v"}
        assert fresh["iteration"] == 1
        assert fresh["max_iterations"] == 2
        assert fresh["specialist_results"] == {}
        assert fresh["agent_messages"] == []
        assert fresh["merged_verdict"] is None
        assert fresh["report"] is None
        assert fresh["status"] is RunStatus.RUNNING

    def test_reset_merges_context_updates(self):
        state = create_initial_state({}, context={"k": "v"})
        fresh = reset_for_next_pass(state, {"previous_verdict": {"summary": "fix it"}})
        assert fresh["context"] == {"k": "v", "previous_verdict": {"summary": "fix it"}}
        assert state["context"] == {"k": "v"}


class TestSnapshot:
    """只读快照测试"""

    def test_snapshot_is_read_only(self):
        state = create_initial_state({"idea": "x"})
        view = snapshot(state)

        with pytest.raises(TypeError):
            view["iteration"] = 5  # type: ignore[index]

    def test_snapshot_isolated_from_later_merges(self):
        state = create_initial_state({})
        view = snapshot(state)
        state = merge(state, {"iteration": 1})
        assert view["iteration"] == 0
