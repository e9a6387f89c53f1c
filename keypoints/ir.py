"""
keypoints/ir.py
═══════════════

In-memory program model consumed by the key-point analysis.

The analysis never builds this model itself: a host (a compiler pipeline,
the JSON dump loader in :mod:`keypoints.ir_dump`, or a test) hands it a
:class:`Function` and the analysis only reads it.  The model mirrors the
parts of an SSA instruction-level IR the analysis cares about:

    Module ─┬─ Function ─┬─ BasicBlock ─── Instruction ──┬── operands : Value*
            │            │                               ├── result   : Value?
            │            │                               └── location : DebugLocation?
            │            ├─ params : Value*
            │            └─ loops  : Loop*
            └─ ...

Instructions are a tagged variant (:class:`InstrKind`) rather than a class
hierarchy; consumers switch on ``instr.kind``.

Identity
────────
``Value`` and ``Instruction`` compare by identity (``eq=False``).  Two
constants spelled the same are two different values unless the host hands
out the same object; the builder below creates a fresh constant per use and
a single object per global symbol.

Typical usage::

    fb = FunctionBuilder("main", source_file="prog.c")
    fb.block("entry")
    x = fb.alloca("x")
    fb.declare(x, "x", line=3)
    fb.call("scanf", [fb.global_value(".str"), x], line=4)
    fb.br("cond")
    fb.block("cond")
    v = fb.load(x)
    c = fb.cmp("slt", v, fb.const(10), line=5)
    fb.cond_br(c, "body", "exit", line=5)
    ...
    fb.loop("cond", ["cond", "body"])
    func = fb.build()
"""

from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

# Opcodes that end a block without falling through to the next one.
TERMINATOR_OPCODES = frozenset({"br", "ret", "unreachable", "switch", "resume"})

# Opcodes that only reinterpret a pointer; the callee of an indirect call is
# described through them.
POINTER_CAST_OPCODES = frozenset({"bitcast", "addrspacecast", "ptrtoint", "inttoptr"})


# ═══════════════════════════════════════════════════════════════════════════
#  DEBUG METADATA
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DebugLocation:
    """A source position attached to an instruction."""
    file: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class SourceVariable:
    """A named source-level variable as recorded by a debug-declare."""
    name: str
    location: Optional[DebugLocation] = None


# ═══════════════════════════════════════════════════════════════════════════
#  VALUES & INSTRUCTIONS
# ═══════════════════════════════════════════════════════════════════════════

class ValueKind(enum.Enum):
    INSTRUCTION = "instruction"   # result of an instruction
    ARGUMENT = "argument"         # function parameter
    CONSTANT = "constant"
    GLOBAL = "global"
    FUNCTION = "function"         # function symbol used as a value


@dataclass(eq=False)
class Value:
    """
    A unit of data manipulated by the program.

    Attributes
    ----------
    name : str
        Printable name (``%x``, ``@.str``, ``10``).  May be empty.
    kind : ValueKind
    definer : Instruction | None
        The instruction producing this value, for ``INSTRUCTION`` values.
    """
    name: str
    kind: ValueKind = ValueKind.INSTRUCTION
    definer: Optional["Instruction"] = field(default=None, repr=False)

    @property
    def is_stack_slot(self) -> bool:
        """True when the value is the address returned by an ``alloca``."""
        return self.definer is not None and self.definer.opcode == "alloca"

    def describe(self) -> str:
        if self.name:
            return self.name
        return f"<{self.kind.value}@{id(self):x}>"

    def __repr__(self) -> str:
        return f"Value({self.describe()!r}, {self.kind.name})"


class InstrKind(enum.Enum):
    CALL = "call"
    BRANCH = "branch"
    DEBUG_DECLARE = "debug-declare"
    OTHER = "other"


@dataclass(eq=False)
class Instruction:
    """
    One IR instruction.

    Only the fields relevant to ``kind`` are populated:

    * CALL          — ``target`` (direct callee name) or ``callee`` (callee
                      operand of an indirect call, also the last operand)
    * BRANCH        — ``condition`` (conditional only) and ``successors``
    * DEBUG_DECLARE — ``declared`` stack slot and ``variable``; the slot is
                      metadata, not an operand
    """
    kind: InstrKind
    opcode: str
    operands: Tuple[Value, ...] = ()
    result: Optional[Value] = None
    location: Optional[DebugLocation] = None
    target: Optional[str] = None
    callee: Optional[Value] = None
    condition: Optional[Value] = None
    successors: Tuple[str, ...] = ()
    declared: Optional[Value] = None
    variable: Optional[SourceVariable] = None
    block: Optional["BasicBlock"] = field(default=None, repr=False)

    # ----- variant queries ---------------------------------------------------

    @property
    def is_call(self) -> bool:
        return self.kind is InstrKind.CALL

    @property
    def is_indirect_call(self) -> bool:
        return self.kind is InstrKind.CALL and self.target is None

    @property
    def is_branch(self) -> bool:
        return self.kind is InstrKind.BRANCH

    @property
    def is_conditional(self) -> bool:
        return self.kind is InstrKind.BRANCH and self.condition is not None

    @property
    def is_debug_declare(self) -> bool:
        return self.kind is InstrKind.DEBUG_DECLARE

    @property
    def is_terminator(self) -> bool:
        return self.opcode in TERMINATOR_OPCODES

    @property
    def arguments(self) -> Tuple[Value, ...]:
        """Call arguments (the callee operand of an indirect call excluded)."""
        if self.is_indirect_call and self.operands:
            return self.operands[:-1]
        return self.operands

    def __repr__(self) -> str:
        res = f"{self.result.describe()} = " if self.result is not None else ""
        ops = ", ".join(v.describe() for v in self.operands)
        extra = f" @{self.target}" if self.target else ""
        return f"<{res}{self.opcode}{extra} {ops}>"


def strip_pointer_casts(value: Value) -> Value:
    """Walk through pointer-reinterpreting casts to the underlying value."""
    seen = set()
    while (
        value.definer is not None
        and value.definer.opcode in POINTER_CAST_OPCODES
        and value.definer.operands
        and id(value) not in seen
    ):
        seen.add(id(value))
        value = value.definer.operands[0]
    return value


# ═══════════════════════════════════════════════════════════════════════════
#  BLOCKS, LOOPS, FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class BasicBlock:
    label: str
    instructions: List[Instruction] = field(default_factory=list)

    @property
    def terminator(self) -> Optional[Instruction]:
        if self.instructions and self.instructions[-1].is_terminator:
            return self.instructions[-1]
        return None

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)

    def __repr__(self) -> str:
        return f"BasicBlock({self.label!r}, {len(self.instructions)} instrs)"


@dataclass(frozen=True)
class Loop:
    """A natural loop: a header label and the labels of its member blocks."""
    header: str
    blocks: FrozenSet[str]

    def __contains__(self, label: object) -> bool:
        return label in self.blocks


@dataclass(eq=False)
class Function:
    """A function: the unit of analysis."""
    name: str
    params: List[Value] = field(default_factory=list)
    blocks: List[BasicBlock] = field(default_factory=list)
    loops: List[Loop] = field(default_factory=list)
    source_file: str = ""

    def instructions(self) -> Iterator[Instruction]:
        """All instructions, blocks in order, instructions in order."""
        for bb in self.blocks:
            yield from bb.instructions

    def block(self, label: str) -> Optional[BasicBlock]:
        for bb in self.blocks:
            if bb.label == label:
                return bb
        return None

    @property
    def block_labels(self) -> List[str]:
        return [bb.label for bb in self.blocks]

    def successors_of(self, label: str) -> List[str]:
        """Labels of the blocks control may flow to after *label*.

        A block without a terminator falls through to the next block.
        """
        labels = self.block_labels
        bb = self.block(label)
        if bb is None:
            return []
        term = bb.terminator
        if term is not None:
            return [s for s in term.successors if s in labels]
        idx = labels.index(label)
        return [labels[idx + 1]] if idx + 1 < len(labels) else []

    def __repr__(self) -> str:
        return (
            f"Function({self.name!r}, blocks={len(self.blocks)}, "
            f"loops={len(self.loops)})"
        )


@dataclass(eq=False)
class Module:
    name: str = ""
    functions: List[Function] = field(default_factory=list)

    def function(self, name: str) -> Optional[Function]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def __iter__(self) -> Iterator[Function]:
        return iter(self.functions)

    def __len__(self) -> int:
        return len(self.functions)


def structural_snapshot(function: Function) -> Tuple:
    """Identity-based fingerprint of a function's blocks and instructions.

    Two snapshots compare equal iff no block, instruction, operand list,
    result or loop was replaced or reordered in between.
    """
    blocks = []
    for bb in function.blocks:
        instrs = []
        for ins in bb.instructions:
            instrs.append((
                id(ins),
                ins.kind,
                ins.opcode,
                tuple(id(v) for v in ins.operands),
                id(ins.result) if ins.result is not None else None,
                ins.target,
                ins.successors,
                ins.location,
            ))
        blocks.append((id(bb), bb.label, tuple(instrs)))
    return (
        function.name,
        tuple(id(p) for p in function.params),
        tuple(blocks),
        tuple(function.loops),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  BUILDER
# ═══════════════════════════════════════════════════════════════════════════

def _local_name(name: str) -> str:
    if not name or name[0] in "%@":
        return name
    return f"%{name}"


class FunctionBuilder:
    """Convenience constructor for :class:`Function` objects.

    Instructions are appended to the current block (set by :meth:`block`).
    ``line=`` arguments attach a :class:`DebugLocation` in ``source_file``;
    omit them to produce an instruction without debug info.
    """

    def __init__(
        self,
        name: str,
        source_file: str = "",
        params: Sequence[str] = (),
    ) -> None:
        self._function = Function(name=name, source_file=source_file)
        self._current: Optional[BasicBlock] = None
        self._globals: Dict[str, Value] = {}
        self._counter = itertools.count()
        for p in params:
            self._function.params.append(Value(_local_name(p), ValueKind.ARGUMENT))

    # ----- structure ---------------------------------------------------------

    @property
    def function(self) -> Function:
        return self._function

    def block(self, label: str) -> BasicBlock:
        bb = BasicBlock(label)
        self._function.blocks.append(bb)
        self._current = bb
        return bb

    def param(self, index: int) -> Value:
        return self._function.params[index]

    def loop(self, header: str, blocks: Iterable[str]) -> Loop:
        lp = Loop(header, frozenset(blocks) | {header})
        self._function.loops.append(lp)
        return lp

    def build(self) -> Function:
        return self._function

    # ----- values ------------------------------------------------------------

    def const(self, text: object) -> Value:
        """A fresh constant value."""
        return Value(str(text), ValueKind.CONSTANT)

    def global_value(self, name: str) -> Value:
        """The single value standing for global symbol *name*."""
        key = name.lstrip("@")
        if key not in self._globals:
            self._globals[key] = Value(f"@{key}", ValueKind.GLOBAL)
        return self._globals[key]

    def function_value(self, name: str) -> Value:
        return Value(f"@{name.lstrip('@')}", ValueKind.FUNCTION)

    # ----- instruction emission ---------------------------------------------

    def _loc(self, line: Optional[int]) -> Optional[DebugLocation]:
        if line is None:
            return None
        return DebugLocation(self._function.source_file, line)

    def _emit(self, ins: Instruction, result_name: Optional[str]) -> Optional[Value]:
        if self._current is None:
            raise RuntimeError("FunctionBuilder: no current block; call block() first")
        if result_name is not None:
            name = _local_name(result_name) if result_name else f"%{next(self._counter)}"
            ins.result = Value(name, ValueKind.INSTRUCTION, definer=ins)
        ins.block = self._current
        self._current.instructions.append(ins)
        return ins.result

    def op(
        self,
        opcode: str,
        operands: Sequence[Value] = (),
        name: Optional[str] = "",
        line: Optional[int] = None,
    ) -> Optional[Value]:
        """Generic instruction.  ``name=None`` means no result value."""
        ins = Instruction(InstrKind.OTHER, opcode, tuple(operands), location=self._loc(line))
        return self._emit(ins, name)

    def alloca(self, name: str = "", line: Optional[int] = None) -> Value:
        return self.op("alloca", (), name=name, line=line)

    def load(self, ptr: Value, name: str = "", line: Optional[int] = None) -> Value:
        return self.op("load", (ptr,), name=name, line=line)

    def store(self, value: Value, ptr: Value, line: Optional[int] = None) -> None:
        self.op("store", (value, ptr), name=None, line=line)

    def binop(
        self, opcode: str, lhs: Value, rhs: Value, name: str = "",
        line: Optional[int] = None,
    ) -> Value:
        return self.op(opcode, (lhs, rhs), name=name, line=line)

    def cmp(
        self, predicate: str, lhs: Value, rhs: Value, name: str = "",
        line: Optional[int] = None,
    ) -> Value:
        return self.op(f"icmp {predicate}", (lhs, rhs), name=name, line=line)

    def cast(self, opcode: str, value: Value, name: str = "") -> Value:
        return self.op(opcode, (value,), name=name)

    def declare(self, slot: Value, var_name: str, line: Optional[int] = None) -> Instruction:
        """Emit a debug-declare binding *slot* to source variable *var_name*."""
        ins = Instruction(
            InstrKind.DEBUG_DECLARE,
            "dbg.declare",
            declared=slot,
            variable=SourceVariable(var_name, self._loc(line)),
        )
        self._emit(ins, None)
        return ins

    def call(
        self,
        target: str,
        args: Sequence[Value] = (),
        name: Optional[str] = None,
        line: Optional[int] = None,
    ) -> Instruction:
        ins = Instruction(
            InstrKind.CALL, "call", tuple(args), location=self._loc(line), target=target,
        )
        self._emit(ins, name)
        return ins

    def call_indirect(
        self,
        callee: Value,
        args: Sequence[Value] = (),
        name: Optional[str] = None,
        line: Optional[int] = None,
    ) -> Instruction:
        ins = Instruction(
            InstrKind.CALL, "call", tuple(args) + (callee,),
            location=self._loc(line), callee=callee,
        )
        self._emit(ins, name)
        return ins

    def br(self, dest: str, line: Optional[int] = None) -> Instruction:
        ins = Instruction(
            InstrKind.BRANCH, "br", successors=(dest,), location=self._loc(line),
        )
        self._emit(ins, None)
        return ins

    def cond_br(
        self,
        condition: Value,
        if_true: str,
        if_false: str,
        line: Optional[int] = None,
    ) -> Instruction:
        ins = Instruction(
            InstrKind.BRANCH, "br", (condition,), location=self._loc(line),
            condition=condition, successors=(if_true, if_false),
        )
        self._emit(ins, None)
        return ins

    def ret(self, value: Optional[Value] = None, line: Optional[int] = None) -> None:
        self.op("ret", (value,) if value is not None else (), name=None, line=line)


__all__ = [
    "TERMINATOR_OPCODES",
    "POINTER_CAST_OPCODES",
    "DebugLocation",
    "SourceVariable",
    "ValueKind",
    "Value",
    "InstrKind",
    "Instruction",
    "BasicBlock",
    "Loop",
    "Function",
    "Module",
    "FunctionBuilder",
    "strip_pointer_casts",
    "structural_snapshot",
]
