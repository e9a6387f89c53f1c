# tests/test_defuse.py
"""Tests for def-use graph construction."""

from keypoints.defuse import DefUseGraph, build_def_use_graph
from keypoints.ir import FunctionBuilder


class TestDefUseGraph:

    def test_users_of_unknown_value_is_empty(self):
        b = FunctionBuilder("f")
        assert DefUseGraph().users_of(b.const(1)) == set()

    def test_duplicate_operand_is_one_edge(self):
        b = FunctionBuilder("f", params=["a"])
        b.block("entry")
        a = b.param(0)
        add = b.binop("add", a, a, name="s")
        graph = build_def_use_graph(b.build())
        assert graph.users_of(a) == {add.definer}
        assert graph.edge_count == 1

    def test_every_operand_has_an_edge(self, scanf_loop):
        graph = build_def_use_graph(scanf_loop)
        for ins in scanf_loop.instructions():
            for operand in ins.operands:
                assert ins in graph.users_of(operand)

    def test_debug_declare_adds_no_edge(self):
        b = FunctionBuilder("f")
        b.block("entry")
        slot = b.alloca("x")
        b.declare(slot, "x")
        graph = build_def_use_graph(b.build())
        assert slot not in graph
        assert len(graph) == 0

    def test_users_of_returns_a_copy(self):
        b = FunctionBuilder("f", params=["a"])
        b.block("entry")
        a = b.param(0)
        b.load(a, name="v")
        graph = build_def_use_graph(b.build())
        graph.users_of(a).clear()
        assert len(graph.users_of(a)) == 1

    def test_add_edge_reports_novelty(self):
        b = FunctionBuilder("f", params=["a"])
        b.block("entry")
        a = b.param(0)
        v = b.load(a, name="v")
        graph = DefUseGraph()
        assert graph.add_edge(a, v.definer) is True
        assert graph.add_edge(a, v.definer) is False
        assert list(graph.edges()) == [(a, v.definer)]
