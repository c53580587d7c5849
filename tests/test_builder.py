"""
图构建测试
==========

测试 GraphBuilder 的拓扑校验、SwarmGraph 的前沿计算与 Mermaid 输出。
"""

import pytest

from agentswarm.agents import AssemblerNode, SpecialistNode, SupervisorNode
from agentswarm.exceptions import GraphDefinitionError
from agentswarm.graph.builder import GraphBuilder, SwarmSystem, build_graph
from agentswarm.graph.edges import END, START
from agentswarm.swarms import get_swarm
from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.types import EdgeKind, NodeKind
from agentswarm.utils.visualizer import generate_mermaid_graph

from conftest import CARD_GAME


def diamond() -> GraphBuilder:
    """a, b 并行 -> review -> assembler"""
    builder = GraphBuilder("diamond")
    builder.add_node(SpecialistNode("a")).add_node(SpecialistNode("b"))
    builder.add_node(SupervisorNode("review", reads=["a", "b"]))
    builder.add_node(AssemblerNode("assembler"))
    builder.add_edge(START, "a").add_edge(START, "b")
    builder.add_edge("a", "review").add_edge("b", "review")
    builder.add_edge("review", "assembler")
    return builder


class TestGraphBuilder:
    """图构建器测试"""

    def test_build_valid_graph(self):
        graph = diamond().build()

        assert len(graph) == 4
        assert graph.entry == ("a", "b")
        assert graph.assembler == "assembler"
        assert graph.order == ("a", "b", "review", "assembler")
        assert graph.upstream("review") == frozenset({"a", "b"})
        assert "review" in graph
        assert "missing" not in graph

    def test_conditional_edge_defaults_to_entry_nodes(self):
        edge = diamond().build().conditional_edge

        assert edge.source == "assembler"
        assert edge.loop_targets == ("a", "b")
        assert edge.finalize_target == END
        assert edge.kind is EdgeKind.CONDITIONAL

    def test_edges_include_start(self):
        edges = [(edge.source, edge.target) for edge in diamond().build().edges()]
        assert edges == [
            (START, "a"),
            (START, "b"),
            ("a", "review"),
            ("b", "review"),
            ("review", "assembler"),
        ]

    def test_graph_is_immutable(self):
        graph = diamond().build()
        with pytest.raises(TypeError):
            graph.nodes["extra"] = SpecialistNode("extra")  # type: ignore[index]

    def test_empty_graph(self):
        with pytest.raises(GraphDefinitionError):
            GraphBuilder().build()

    def test_duplicate_node(self):
        with pytest.raises(GraphDefinitionError):
            GraphBuilder().add_node(SpecialistNode("a")).add_node(SpecialistNode("a"))

    def test_edge_to_unknown_node(self):
        builder = diamond().add_edge("a", "ghost")
        with pytest.raises(GraphDefinitionError, match="ghost"):
            builder.build()

    def test_edge_from_unknown_node(self):
        builder = diamond().add_edge("ghost", "review")
        with pytest.raises(GraphDefinitionError, match="ghost"):
            builder.build()

    def test_sequential_edge_cannot_target_start_or_end(self):
        with pytest.raises(GraphDefinitionError):
            GraphBuilder().add_edge("a", START)
        with pytest.raises(GraphDefinitionError):
            GraphBuilder().add_edge("assembler", END)
        with pytest.raises(GraphDefinitionError):
            GraphBuilder().add_edge(END, "a")

    def test_self_loop(self):
        builder = diamond().add_edge("review", "review")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_node_without_incoming_edge(self):
        builder = diamond().add_node(SpecialistNode("orphan"))
        builder.add_edge("orphan", "review")
        with pytest.raises(GraphDefinitionError, match="orphan"):
            builder.build()

    def test_entry_node_with_upstream(self):
        builder = diamond().add_edge("a", "b")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_cycle_rejected(self):
        """测试除条件边外的环"""
        builder = GraphBuilder("cyclic")
        builder.add_node(SpecialistNode("a")).add_node(SpecialistNode("b")).add_node(SpecialistNode("c"))
        builder.add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge("a", "b").add_edge("b", "c").add_edge("c", "b")
        builder.add_edge("c", "assembler")

        with pytest.raises(GraphDefinitionError, match="环"):
            builder.build()

    def test_exactly_one_assembler(self):
        builder = diamond().add_node(AssemblerNode("second")).add_edge("review", "second")
        with pytest.raises(GraphDefinitionError, match="Assembler"):
            builder.build()

    def test_missing_assembler(self):
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a")).add_edge(START, "a")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_assembler_must_be_unique_sink(self):
        builder = diamond().add_node(SpecialistNode("dangling")).add_edge("a", "dangling")
        with pytest.raises(GraphDefinitionError, match="dangling"):
            builder.build()

    def test_assembler_cannot_have_outgoing_edges(self):
        builder = diamond().add_node(SpecialistNode("after")).add_edge("assembler", "after")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_at_most_one_supervisor(self):
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a"))
        builder.add_node(SupervisorNode("s1", reads=["a"])).add_node(SupervisorNode("s2", reads=["a"]))
        builder.add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge("a", "s1").add_edge("s1", "s2").add_edge("s2", "assembler")

        with pytest.raises(GraphDefinitionError, match="Supervisor"):
            builder.build()

    def test_reads_must_be_ancestors(self):
        """测试读取的上游必须保证先于节点完成"""
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a")).add_node(SpecialistNode("b", reads=["a"]))
        builder.add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge(START, "b")
        builder.add_edge("a", "assembler").add_edge("b", "assembler")

        with pytest.raises(GraphDefinitionError, match="b"):
            builder.build()

    def test_reads_must_be_specialists(self):
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a"))
        builder.add_node(SupervisorNode("review", reads=["a"]))
        builder.add_node(SpecialistNode("after", reads=["review"]))
        builder.add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge("a", "review").add_edge("review", "after")
        builder.add_edge("after", "assembler")

        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_reads_unknown_node(self):
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a", reads=["ghost"])).add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge("a", "assembler")
        with pytest.raises(GraphDefinitionError, match="ghost"):
            builder.build()

    def test_reads_verdict_requires_supervisor_ancestor(self):
        builder = GraphBuilder()
        builder.add_node(SpecialistNode("a", reads_verdict=True)).add_node(AssemblerNode("assembler"))
        builder.add_edge(START, "a").add_edge("a", "assembler")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_conditional_edge_must_leave_assembler(self):
        builder = diamond().set_conditional_edge("review")
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_conditional_edge_must_loop_to_entry(self):
        builder = diamond().set_conditional_edge("assembler", loop_targets=["review"])
        with pytest.raises(GraphDefinitionError):
            builder.build()

    def test_conditional_edge_set_once(self):
        builder = diamond().set_conditional_edge("assembler")
        with pytest.raises(GraphDefinitionError):
            builder.set_conditional_edge("assembler")

    def test_custom_predicate(self):
        graph = diamond().set_conditional_edge("assembler", predicate=lambda state: "finalize").build()
        assert graph.conditional_edge.route({"iteration": 0, "max_iterations": 5}) == "finalize"


class TestNodeDeclarations:
    """节点声明校验"""

    def test_supervisor_requires_reads(self):
        with pytest.raises(GraphDefinitionError):
            SupervisorNode("review")

    def test_reserved_node_ids(self):
        with pytest.raises(GraphDefinitionError):
            SpecialistNode(START)
        with pytest.raises(GraphDefinitionError):
            SpecialistNode("")


class TestFrontier:
    """前沿计算测试"""

    def test_card_game_frontier(self):
        graph = build_graph(CARD_GAME)

        assert graph.frontier([]) == ["rules", "art"]
        assert graph.frontier(["rules"]) == ["art"]
        assert graph.frontier(["rules", "art"]) == ["review"]
        assert graph.frontier(["rules", "art", "review"]) == ["assembler"]
        assert graph.frontier(graph.order) == []
        assert graph.pending(["rules"]) == ["art", "review", "assembler"]

    def test_music_edu_topology(self):
        graph = build_graph(get_swarm("music_edu"))

        assert graph.entry == ("theory-analyzer", "instrument-simulator")
        assert graph.upstream("lesson-builder") == frozenset({"theory-analyzer", "instrument-simulator"})
        assert graph.upstream("assembler") == frozenset({"math-harmonics", "monetization-advisor"})
        assert graph.frontier(["theory-analyzer", "instrument-simulator"]) == [
            "composition-generator",
            "lesson-builder",
        ]
        assert graph.descriptors["supervisor"].kind is NodeKind.SUPERVISOR
        assert graph.conditional_edge.loop_targets == ("theory-analyzer", "instrument-simulator")

    def test_code_critique_fans_out_from_start(self):
        graph = build_graph(get_swarm("code_critique"))

        assert graph.entry == ("architect", "security", "ux", "perf")
        assert graph.frontier([]) == ["architect", "security", "ux", "perf"]
        assert graph.upstream("supervisor") == frozenset({"architect", "security", "ux", "perf"})
        assert graph.upstream("assembler") == frozenset({"supervisor"})
        assert graph.conditional_edge.loop_targets == ("architect", "security", "ux", "perf")

    def test_code_critique_takes_code_as_string_input(self):
        definition = get_swarm("code_critique")
        assert definition.normalize_payload("def f(): pass") == {"code": "def f(): pass"}


class TestBuildGraph:
    """声明式编译测试"""

    def test_start_in_after_is_ignored(self):
        spec = NodeSpec.of("a", NodeKind.SPECIALIST, after=[START])
        assert spec.upstream == frozenset()

    def test_definition_with_bad_topology(self):
        definition = SwarmDefinition(
            name="broken",
            nodes=(
                NodeSpec.of("a", NodeKind.SPECIALIST),
                NodeSpec.of("assembler", NodeKind.ASSEMBLER, after=["missing"]),
            ),
        )
        with pytest.raises(GraphDefinitionError):
            build_graph(definition)

    def test_normalize_payload(self):
        definition = get_swarm("music_edu")
        assert definition.normalize_payload("ear training") == {
            "idea": "ear training",
            "focus_area": "",
            "difficulty": "",
        }
        assert definition.normalize_payload({"idea": "x", "difficulty": "advanced"})["difficulty"] == "advanced"
        assert definition.normalize_payload(None) == {"focus_area": "", "difficulty": ""}
        with pytest.raises(TypeError):
            definition.normalize_payload(42)

    def test_system_builds_graph_lazily(self, mock_settings):
        system = SwarmSystem(CARD_GAME, settings=mock_settings)
        assert system._graph is None
        assert system.graph is system.graph
        system.reset()
        assert system._graph is None


class TestMermaid:
    """Mermaid 输出测试"""

    def test_mermaid_graph(self):
        mermaid = generate_mermaid_graph(build_graph(CARD_GAME))

        assert mermaid.startswith("flowchart TD")
        assert "rules[rules]" in mermaid
        assert "review{{review}}" in mermaid
        assert "assembler[[assembler]]" in mermaid
        assert "__start__ --> rules" in mermaid
        assert "rules --> review" in mermaid
        assert "assembler -. iterate .-> rules" in mermaid
        assert "assembler -. finalize .-> __end__" in mermaid

    def test_system_visualization_escapes_dashes(self, mock_settings):
        mermaid = SwarmSystem(get_swarm("music_edu"), settings=mock_settings).get_graph_visualization()
        assert "theory_analyzer[theory-analyzer]" in mermaid
        assert "theory_analyzer --> composition_generator" in mermaid
