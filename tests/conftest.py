# tests/conftest.py
"""
Shared fixtures: small functions built with FunctionBuilder, one per
behaviour under test, plus an on-disk JSON dump for loader/CLI tests.
"""

import json

import pytest

from keypoints.ir import FunctionBuilder


# ── Builders ─────────────────────────────────────────────────────

def build_scanf_loop(condition_var="x"):
    """
    int x, y;  scanf("%d", &x);  while (<condition_var> < 10) { ... }

    Lines: x declared at 2, y at 3, scanf at 4, loop branch at 5.
    """
    b = FunctionBuilder("main", source_file="t.c")
    b.block("entry")
    x = b.alloca("x")
    b.declare(x, "x", line=2)
    y = b.alloca("y")
    b.declare(y, "y", line=3)
    b.store(b.const(0), y, line=3)
    fmt = b.global_value(".str")
    b.call("__isoc99_scanf", [fmt, x], name="", line=4)
    b.br("cond")

    b.block("cond")
    slot = x if condition_var == "x" else y
    v = b.load(slot, name="v", line=5)
    c = b.cmp("slt", v, b.const(10), name="c", line=5)
    b.cond_br(c, "body", "exit", line=5)

    b.block("body")
    w = b.load(y, name="w", line=6)
    inc = b.binop("add", w, b.const(1), name="inc", line=6)
    b.store(inc, y, line=6)
    b.br("cond", line=6)

    b.block("exit")
    b.ret(b.const(0), line=8)
    b.loop("cond", ["cond", "body"])
    return b.build()


def build_indirect_call():
    b = FunctionBuilder("dispatch", source_file="t.c", params=["fp"])
    b.block("entry")
    fp = b.param(0)
    b.call_indirect(fp, [b.const(1)], line=7)
    b.ret(line=8)
    return b.build()


def build_three_branches():
    """Located, unlocated, located: the middle branch carries no debug info."""
    b = FunctionBuilder("branches", source_file="t.c", params=["n"])
    n = b.param(0)
    b.block("entry")
    c1 = b.cmp("eq", n, b.const(0), name="c1", line=3)
    b.cond_br(c1, "a", "b1", line=3)
    b.block("a")
    b.br("b1")
    b.block("b1")
    c2 = b.cmp("sgt", n, b.const(5), name="c2")
    b.cond_br(c2, "b", "c")
    b.block("b")
    b.br("c")
    b.block("c")
    c3 = b.cmp("slt", n, b.const(9), name="c3", line=7)
    b.cond_br(c3, "d", "e", line=7)
    b.block("d")
    b.br("e")
    b.block("e")
    b.ret()
    return b.build()


def build_unconditional_header_loop():
    """for (;;) { scanf(...); if (x) break; } with the test in the body."""
    b = FunctionBuilder("spin", source_file="t.c")
    b.block("entry")
    x = b.alloca("x")
    b.declare(x, "x", line=2)
    b.br("head")
    b.block("head")
    b.call("scanf", [b.global_value(".str"), x], line=4)
    b.br("body", line=4)
    b.block("body")
    v = b.load(x, name="v", line=5)
    c = b.cmp("eq", v, b.const(0), name="c", line=5)
    b.cond_br(c, "exit", "head", line=5)
    b.block("exit")
    b.ret()
    b.loop("head", ["head", "body"])
    return b.build()


SAMPLE_DUMP = {
    "module": "prog",
    "source_file": "prog.c",
    "functions": [
        {
            "name": "main",
            "blocks": [
                {"label": "entry", "instructions": [
                    {"result": "%x", "opcode": "alloca"},
                    {"opcode": "dbg.declare", "declared": "%x",
                     "variable": {"name": "x", "loc": ["prog.c", 3]}},
                    {"opcode": "call", "target": "__isoc99_scanf",
                     "operands": ["@.str", "%x"], "loc": 4},
                    {"opcode": "br", "successors": ["cond"]},
                ]},
                {"label": "cond", "instructions": [
                    {"result": "%v", "opcode": "load", "operands": ["%x"], "loc": 5},
                    {"result": "%c", "opcode": "icmp slt",
                     "operands": ["%v", 10], "loc": 5},
                    {"opcode": "br", "condition": "%c",
                     "successors": ["body", "exit"], "loc": 5},
                ]},
                {"label": "body", "instructions": [
                    {"result": "%fp", "opcode": "load", "operands": ["@handler"]},
                    {"opcode": "call", "callee": "%fp", "operands": [], "loc": 6},
                    {"opcode": "br", "successors": ["cond"], "loc": 6},
                ]},
                {"label": "exit", "instructions": [
                    {"opcode": "ret", "operands": [0], "loc": 8},
                ]},
            ],
        },
        {
            "name": "helper",
            "params": ["%n"],
            "blocks": [
                {"label": "entry", "instructions": [
                    {"result": "%c", "opcode": "icmp eq",
                     "operands": ["%n", 0], "loc": 12},
                    {"opcode": "br", "condition": "%c",
                     "successors": ["a", "b"], "loc": 12},
                ]},
                {"label": "a", "instructions": [{"opcode": "ret", "operands": []}]},
                {"label": "b", "instructions": [{"opcode": "ret", "operands": []}]},
            ],
        },
    ],
}


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def scanf_loop():
    return build_scanf_loop("x")


@pytest.fixture
def unrelated_loop():
    return build_scanf_loop("y")


@pytest.fixture
def indirect_call_fn():
    return build_indirect_call()


@pytest.fixture
def three_branches():
    return build_three_branches()


@pytest.fixture
def unconditional_header_loop():
    return build_unconditional_header_loop()


@pytest.fixture
def sample_dump():
    return json.loads(json.dumps(SAMPLE_DUMP))


@pytest.fixture
def dump_file(tmp_path, sample_dump):
    path = tmp_path / "prog.dump.json"
    path.write_text(json.dumps(sample_dump), encoding="utf-8")
    return path
