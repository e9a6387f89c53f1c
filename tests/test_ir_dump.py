# tests/test_ir_dump.py
"""Tests for the JSON dump loader."""

import json

import pytest

from keypoints.errors import DumpFormatError, MalformedInputError
from keypoints.ir import DebugLocation, InstrKind, ValueKind
from keypoints.ir_dump import load_dump, loads_dump, module_from_dict


def _single(instructions, **extra):
    fn = {"name": "f", "blocks": [{"label": "entry", "instructions": instructions}]}
    fn.update(extra)
    return {"source_file": "t.c", "functions": [fn]}


# ── Happy path ───────────────────────────────────────────────────

class TestLoadDump:

    def test_module_shape(self, dump_file):
        module = load_dump(dump_file)
        assert module.name == "prog"
        assert [fn.name for fn in module] == ["main", "helper"]
        main = module.function("main")
        assert main.block_labels == ["entry", "cond", "body", "exit"]
        assert main.source_file == "prog.c"

    def test_module_name_defaults_to_file_stem(self, tmp_path, sample_dump):
        del sample_dump["module"]
        path = tmp_path / "other.json"
        path.write_text(json.dumps(sample_dump), encoding="utf-8")
        assert load_dump(path).name == "other"

    def test_loops_discovered_when_absent(self, sample_dump):
        main = module_from_dict(sample_dump).function("main")
        assert [(lp.header, lp.blocks) for lp in main.loops] == [
            ("cond", frozenset({"cond", "body"}))
        ]

    def test_explicit_loops_are_kept(self, sample_dump):
        sample_dump["functions"][0]["loops"] = [{"header": "cond", "blocks": ["cond"]}]
        main = module_from_dict(sample_dump).function("main")
        assert [lp.blocks for lp in main.loops] == [frozenset({"cond"})]

    def test_locals_are_shared_and_constants_fresh(self, sample_dump):
        main = module_from_dict(sample_dump).function("main")
        alloca = main.blocks[0].instructions[0]
        load = main.blocks[1].instructions[0]
        assert load.operands[0] is alloca.result
        assert alloca.result.is_stack_slot
        cmp = main.blocks[1].instructions[1]
        assert cmp.operands[1].kind is ValueKind.CONSTANT
        assert cmp.operands[1].name == "10"

    def test_globals_are_shared_across_functions(self):
        data = {"functions": [
            {"name": "a", "blocks": [{"label": "e", "instructions": [
                {"opcode": "load", "result": "%v", "operands": ["@g"]}]}]},
            {"name": "b", "blocks": [{"label": "e", "instructions": [
                {"opcode": "load", "result": "%v", "operands": ["@g"]}]}]},
        ]}
        module = module_from_dict(data)
        ga = module.function("a").blocks[0].instructions[0].operands[0]
        gb = module.function("b").blocks[0].instructions[0].operands[0]
        assert ga is gb
        assert ga.kind is ValueKind.GLOBAL

    def test_forward_references(self):
        data = {"functions": [{"name": "f", "blocks": [
            {"label": "a", "instructions": [
                {"opcode": "phi", "result": "%p", "operands": ["%q"]}]},
            {"label": "b", "instructions": [
                {"opcode": "add", "result": "%q", "operands": ["%p", 1]}]},
        ]}]}
        fn = module_from_dict(data).function("f")
        phi = fn.blocks[0].instructions[0]
        add = fn.blocks[1].instructions[0]
        assert phi.operands[0] is add.result
        assert add.result.definer is add

    def test_call_variants(self, sample_dump):
        main = module_from_dict(sample_dump).function("main")
        scanf = main.blocks[0].instructions[2]
        assert scanf.kind is InstrKind.CALL and scanf.target == "__isoc99_scanf"
        assert scanf.location == DebugLocation("prog.c", 4)
        indirect = main.blocks[2].instructions[1]
        assert indirect.is_indirect_call
        assert indirect.operands[-1] is indirect.callee

    def test_debug_declare(self, sample_dump):
        main = module_from_dict(sample_dump).function("main")
        declare = main.blocks[0].instructions[1]
        assert declare.is_debug_declare
        assert declare.operands == ()
        assert declare.variable.name == "x"
        assert declare.variable.location == DebugLocation("prog.c", 3)

    @pytest.mark.parametrize("raw, expected", [
        (7, DebugLocation("t.c", 7)),
        (["u.c", 7], DebugLocation("u.c", 7)),
        (["u.c", 7, 3], DebugLocation("u.c", 7, 3)),
        ({"line": 7, "column": 2}, DebugLocation("t.c", 7, 2)),
    ])
    def test_location_forms(self, raw, expected):
        fn = module_from_dict(_single([{"opcode": "ret", "loc": raw}])).function("f")
        assert fn.blocks[0].instructions[0].location == expected


# ── Errors ───────────────────────────────────────────────────────

class TestDumpErrors:

    def test_invalid_json(self):
        with pytest.raises(DumpFormatError, match="invalid JSON"):
            loads_dump("{not json", path="x.json")

    def test_missing_file(self, tmp_path):
        with pytest.raises(DumpFormatError) as excinfo:
            load_dump(tmp_path / "absent.json")
        assert excinfo.value.path.endswith("absent.json")

    def test_is_a_malformed_input_error(self):
        with pytest.raises(MalformedInputError):
            module_from_dict([])

    def test_missing_functions_list(self):
        with pytest.raises(DumpFormatError, match="functions"):
            module_from_dict({"module": "m"})

    def test_undefined_local(self):
        with pytest.raises(DumpFormatError, match="undefined value '%nope'"):
            module_from_dict(_single([{"opcode": "load", "operands": ["%nope"]}]))

    def test_value_defined_twice(self):
        with pytest.raises(DumpFormatError, match="defined twice"):
            module_from_dict(_single([
                {"opcode": "alloca", "result": "%x"},
                {"opcode": "alloca", "result": "%x"},
            ]))

    def test_duplicate_block_label(self):
        data = {"functions": [{"name": "f", "blocks": [
            {"label": "a", "instructions": []},
            {"label": "a", "instructions": []},
        ]}]}
        with pytest.raises(DumpFormatError, match="duplicate block label"):
            module_from_dict(data)

    def test_call_needs_exactly_one_target(self):
        with pytest.raises(DumpFormatError, match="exactly one"):
            module_from_dict(_single([{"opcode": "call", "operands": []}]))
        with pytest.raises(DumpFormatError, match="exactly one"):
            module_from_dict(_single([
                {"opcode": "call", "target": "f", "callee": "@g"},
            ]))

    def test_bad_location(self):
        with pytest.raises(DumpFormatError, match="bad location"):
            module_from_dict(_single([{"opcode": "ret", "loc": "line 3"}]))

    def test_empty_blocks(self):
        with pytest.raises(DumpFormatError, match="non-empty"):
            module_from_dict({"functions": [{"name": "f", "blocks": []}]})

    @pytest.mark.parametrize("data", [
        _single([{"opcode": "ret"}], params=5),
        _single([{"opcode": "ret"}], loops=None),
        _single([{"opcode": "ret", "operands": "%x"}]),
        {"functions": [{"name": "f", "blocks": [
            {"label": "entry", "instructions": 7},
        ]}]},
    ], ids=["params", "loops", "operands", "instructions"])
    def test_non_list_sections(self, data):
        with pytest.raises(DumpFormatError, match="must be a list"):
            module_from_dict(data)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin.json"
        path.write_bytes(b'{"functions": [\xff\xfe]}')
        with pytest.raises(DumpFormatError, match="UTF-8") as excinfo:
            load_dump(path)
        assert excinfo.value.path.endswith("latin.json")

    def test_error_names_the_function(self):
        with pytest.raises(DumpFormatError) as excinfo:
            module_from_dict(_single([{"opcode": "load", "operands": ["%nope"]}]))
        assert excinfo.value.where.startswith("function f")
