"""
keypoints/defuse.py
═══════════════════

Def-use relation over the values of one function.

    ┌─────────────────────────────────────────────────────────────────┐
    │  operand Value ──use──▶ consuming Instruction                   │
    │                                                                 │
    │  DefUseGraph[v] = { I | v ∈ I.operands }                        │
    └─────────────────────────────────────────────────────────────────┘

The graph is built by a single pass over every instruction in program
order.  The reverse direction (value → defining instruction) needs no
table: a result value already knows its ``definer``.

Usage example::

    from keypoints.defuse import build_def_use_graph

    graph = build_def_use_graph(func)
    for user in graph.users_of(slot):
        print(user.opcode)
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Set

from .ir import Function, Instruction, Value

logger = logging.getLogger(__name__)


class DefUseGraph:
    """
    Mapping from a value to the set of instructions consuming it.

    Duplicate ``(value, instruction)`` pairs collapse; an instruction that
    names the same operand twice is a single edge.
    """

    def __init__(self) -> None:
        self._users: Dict[Value, Set[Instruction]] = {}
        self._edge_count = 0

    # ── Mutation (used by the builder) ────────────────────────────────

    def add_edge(self, value: Value, user: Instruction) -> bool:
        """Record ``value → user``.  Returns False if the edge existed."""
        users = self._users.setdefault(value, set())
        if user in users:
            return False
        users.add(user)
        self._edge_count += 1
        return True

    # ── Queries ───────────────────────────────────────────────────────

    def users_of(self, value: Value) -> Set[Instruction]:
        """Instructions that consume *value* (empty set when none)."""
        return set(self._users.get(value, ()))

    @property
    def values(self) -> List[Value]:
        """Every value with at least one use."""
        return list(self._users)

    @property
    def edge_count(self) -> int:
        return self._edge_count

    def edges(self) -> Iterator[tuple]:
        for value, users in self._users.items():
            for user in users:
                yield value, user

    def __contains__(self, value: object) -> bool:
        return value in self._users

    def __len__(self) -> int:
        return len(self._users)

    def __repr__(self) -> str:
        return f"DefUseGraph(values={len(self)}, edges={self.edge_count})"


def build_def_use_graph(function: Function) -> DefUseGraph:
    """Scan *function* once and return its def-use graph."""
    graph = DefUseGraph()
    for ins in function.instructions():
        for operand in ins.operands:
            graph.add_edge(operand, ins)
    logger.debug(
        "def-use graph for %s: %d values, %d edges",
        function.name, len(graph), graph.edge_count,
    )
    return graph


__all__ = ["DefUseGraph", "build_def_use_graph"]
