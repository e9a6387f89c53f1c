"""
keypoints/ir_dump.py
════════════════════

Load a program model from a JSON dump.

The dump is the hand-off format between an IR producer (a compiler plugin,
a disassembler script, a test fixture) and the key-point analysis.  One
document holds one module::

    {
      "module": "prog",
      "source_file": "prog.c",
      "functions": [
        {
          "name": "main",
          "params": ["%argc", "%argv"],
          "blocks": [
            {"label": "entry", "instructions": [
              {"result": "%x", "opcode": "alloca"},
              {"opcode": "dbg.declare", "declared": "%x",
               "variable": {"name": "x", "loc": ["prog.c", 3]}},
              {"opcode": "call", "target": "scanf",
               "operands": ["@.str", "%x"], "loc": 4},
              {"opcode": "br", "successors": ["cond"]}
            ]},
            ...
          ],
          "loops": [{"header": "cond", "blocks": ["cond", "body"]}]
        }
      ]
    }

Operand tokens
──────────────
``%name``   local value: a parameter or an instruction result anywhere in
            the function (forward references allowed, as in SSA phis)
``@name``   global symbol, one value per name per module
other       a constant; every occurrence is a distinct value

Locations are ``[file, line]``, ``[file, line, column]``, ``{"file":…,
"line":…}`` or a bare line number (file defaults to ``source_file``).

When a function has no ``loops`` key the loader discovers natural loops
from the block graph.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import DumpFormatError
from .ir import (
    BasicBlock,
    DebugLocation,
    Function,
    Instruction,
    InstrKind,
    Loop,
    Module,
    SourceVariable,
    Value,
    ValueKind,
)
from .loops import find_natural_loops

logger = logging.getLogger(__name__)

_DEBUG_DECLARE_OPCODES = frozenset({"dbg.declare", "llvm.dbg.declare"})


class _FunctionLoader:
    """Turns one ``functions[i]`` entry into a :class:`Function`."""

    def __init__(
        self,
        data: Mapping[str, Any],
        globals_: Dict[str, Value],
        source_file: str,
        path: Optional[str],
    ) -> None:
        self._data = data
        self._globals = globals_
        self._source_file = source_file
        self._path = path
        self._name = str(data.get("name", ""))
        self._locals: Dict[str, Value] = {}

    def _error(self, message: str, where: str = "") -> DumpFormatError:
        ctx = f"function {self._name or '<anonymous>'}"
        if where:
            ctx += f", {where}"
        return DumpFormatError(message, where=ctx, path=self._path)

    def _list(self, data: Mapping[str, Any], key: str, where: str = "") -> List[Any]:
        """``data[key]`` as a list; a missing key is an empty list."""
        value = data.get(key, [])
        if not isinstance(value, list):
            raise self._error(f"'{key}' must be a list, got {type(value).__name__}", where)
        return value

    # ----- value resolution --------------------------------------------------

    def _resolve(self, token: Any, where: str) -> Value:
        if isinstance(token, str) and token.startswith("%"):
            try:
                return self._locals[token]
            except KeyError:
                raise self._error(f"undefined value '{token}'", where) from None
        if isinstance(token, str) and token.startswith("@"):
            if token not in self._globals:
                self._globals[token] = Value(token, ValueKind.GLOBAL)
            return self._globals[token]
        if isinstance(token, (str, int, float)) and not isinstance(token, bool):
            return Value(str(token), ValueKind.CONSTANT)
        raise self._error(f"unsupported operand token {token!r}", where)

    def _location(self, raw: Any, where: str) -> Optional[DebugLocation]:
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise self._error(f"bad location {raw!r}", where)
        if isinstance(raw, int):
            return DebugLocation(self._source_file, raw)
        if isinstance(raw, Mapping):
            try:
                return DebugLocation(
                    str(raw.get("file", self._source_file)),
                    int(raw["line"]),
                    int(raw.get("column", 0)),
                )
            except (KeyError, TypeError, ValueError):
                raise self._error(f"bad location {raw!r}", where) from None
        if isinstance(raw, (list, tuple)) and 2 <= len(raw) <= 3:
            try:
                col = int(raw[2]) if len(raw) == 3 else 0
                return DebugLocation(str(raw[0]), int(raw[1]), col)
            except (TypeError, ValueError):
                raise self._error(f"bad location {raw!r}", where) from None
        raise self._error(f"bad location {raw!r}", where)

    # ----- construction ------------------------------------------------------

    def load(self) -> Function:
        if not self._name:
            raise self._error("function without a name")
        func = Function(name=self._name, source_file=self._source_file)

        for p in self._list(self._data, "params"):
            if not isinstance(p, str) or not p.startswith("%"):
                raise self._error(f"parameter names must start with '%': {p!r}")
            value = Value(p, ValueKind.ARGUMENT)
            self._locals[p] = value
            func.params.append(value)

        blocks = self._data.get("blocks")
        if not isinstance(blocks, list) or not blocks:
            raise self._error("'blocks' must be a non-empty list")

        # Results are created first so operands may refer forward.
        pending: List[tuple] = []
        seen_labels = set()
        for b_idx, raw_block in enumerate(blocks):
            label = raw_block.get("label") if isinstance(raw_block, Mapping) else None
            if not isinstance(label, str) or not label:
                raise self._error(f"block #{b_idx} has no label")
            if label in seen_labels:
                raise self._error(f"duplicate block label '{label}'")
            seen_labels.add(label)
            bb = BasicBlock(label)
            func.blocks.append(bb)
            instructions = self._list(raw_block, "instructions", f"block {label}")
            for i_idx, raw in enumerate(instructions):
                where = f"block {label}, instruction #{i_idx}"
                if not isinstance(raw, Mapping) or "opcode" not in raw:
                    raise self._error("instruction without an opcode", where)
                result = raw.get("result")
                if result is not None:
                    if not isinstance(result, str) or not result.startswith("%"):
                        raise self._error(f"result names must start with '%': {result!r}", where)
                    if result in self._locals:
                        raise self._error(f"value '{result}' defined twice", where)
                    self._locals[result] = Value(result, ValueKind.INSTRUCTION)
                pending.append((bb, raw, where))

        for bb, raw, where in pending:
            ins = self._instruction(raw, where)
            ins.block = bb
            bb.instructions.append(ins)

        if "loops" in self._data:
            func.loops = [
                self._loop(raw, n) for n, raw in enumerate(self._list(self._data, "loops"))
            ]
        else:
            func.loops = find_natural_loops(func)
        return func

    def _instruction(self, raw: Mapping[str, Any], where: str) -> Instruction:
        opcode = str(raw["opcode"])
        loc = self._location(raw.get("loc"), where)
        operands = tuple(self._resolve(t, where) for t in self._list(raw, "operands", where))

        if opcode == "call":
            target, callee_tok = raw.get("target"), raw.get("callee")
            if (target is None) == (callee_tok is None):
                raise self._error("call needs exactly one of 'target' or 'callee'", where)
            if target is not None:
                ins = Instruction(InstrKind.CALL, opcode, operands, location=loc,
                                  target=str(target))
            else:
                callee = self._resolve(callee_tok, where)
                ins = Instruction(InstrKind.CALL, opcode, operands + (callee,),
                                  location=loc, callee=callee)
        elif opcode == "br":
            successors = raw.get("successors", [])
            if not isinstance(successors, list) or not all(isinstance(s, str) for s in successors):
                raise self._error("'successors' must be a list of labels", where)
            cond_tok = raw.get("condition")
            condition = self._resolve(cond_tok, where) if cond_tok is not None else None
            ins = Instruction(
                InstrKind.BRANCH, opcode,
                (condition,) if condition is not None else (),
                location=loc, condition=condition, successors=tuple(successors),
            )
        elif opcode in _DEBUG_DECLARE_OPCODES:
            declared = self._resolve(raw.get("declared"), where)
            var = raw.get("variable")
            if not isinstance(var, Mapping) or not var.get("name"):
                raise self._error("debug-declare without a variable name", where)
            ins = Instruction(
                InstrKind.DEBUG_DECLARE, opcode, location=loc,
                declared=declared,
                variable=SourceVariable(str(var["name"]),
                                        self._location(var.get("loc"), where)),
            )
        else:
            ins = Instruction(InstrKind.OTHER, opcode, operands, location=loc)

        result = raw.get("result")
        if result is not None:
            ins.result = self._locals[result]
            ins.result.definer = ins
        return ins

    def _loop(self, raw: Any, index: int) -> Loop:
        where = f"loop #{index}"
        if not isinstance(raw, Mapping) or not isinstance(raw.get("header"), str):
            raise self._error("loop without a header", where)
        members = raw.get("blocks", [])
        if not isinstance(members, list):
            raise self._error("'blocks' of a loop must be a list", where)
        return Loop(raw["header"], frozenset(str(m) for m in members))


def module_from_dict(data: Mapping[str, Any], path: Optional[str] = None) -> Module:
    """Build a :class:`Module` from an already-parsed dump document."""
    if not isinstance(data, Mapping):
        raise DumpFormatError("dump root must be an object", path=path)
    functions = data.get("functions")
    if not isinstance(functions, list):
        raise DumpFormatError("dump has no 'functions' list", path=path)

    source_file = str(data.get("source_file", ""))
    default_name = Path(path).stem if path else ""
    module = Module(name=str(data.get("module", default_name)))
    globals_: Dict[str, Value] = {}
    for raw in functions:
        if not isinstance(raw, Mapping):
            raise DumpFormatError("function entries must be objects", path=path)
        fn_source = str(raw.get("source_file", source_file))
        module.functions.append(_FunctionLoader(raw, globals_, fn_source, path).load())
    logger.debug("loaded %d function(s) from %s", len(module), path or "<string>")
    return module


def loads_dump(text: str, path: Optional[str] = None) -> Module:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DumpFormatError(
            f"invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}",
            path=path,
        ) from exc
    return module_from_dict(data, path=path)


def load_dump(path: Union[str, Path]) -> Module:
    """Read and parse the dump file at *path*."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise DumpFormatError(f"cannot read dump: {exc}", path=str(p)) from exc
    except UnicodeDecodeError as exc:
        raise DumpFormatError(
            f"dump is not valid UTF-8: {exc.reason} at byte {exc.start}",
            path=str(p),
        ) from exc
    return loads_dump(text, path=str(p))


__all__ = ["load_dump", "loads_dump", "module_from_dict"]
