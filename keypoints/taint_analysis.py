#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
keypoints/taint_analysis.py
═══════════════════════════

Input-influence analysis for loop conditions.

A value is *tainted* when it is handed to a recognized input-producing call
(``scanf(fmt, &x)`` taints both ``fmt`` and the slot of ``x``).  A loop
condition is *input-influenced* when some tainted value is connected to it
in the def-use relation.

Architecture Overview
─────────────────────

    ┌─────────────────────────────────────────────────────────────────┐
    │                     ANALYSIS PIPELINE                           │
    │                                                                 │
    │   1. Configure recognized input functions (TaintConfig)         │
    │   2. Seed: arguments of recognized direct calls → TaintSet      │
    │   3. Build def-use graph (keypoints.defuse)                     │
    │   4. From a condition value, walk operands/users both ways      │
    │   5. Report every tainted value met on the way                  │
    └─────────────────────────────────────────────────────────────────┘

The walk in step 4 is deliberately direction-agnostic: from a value it
moves back to the operands of its definer *and* forward to its users, and
from an instruction to its operands and its result.  A source that is only
downstream of the condition is therefore still reported.

Usage Example
─────────────

    from keypoints.taint_analysis import (
        create_default_config, identify_input_sources, InfluencePropagator,
    )
    from keypoints.defuse import build_def_use_graph

    config = create_default_config().with_functions("my_read")
    sources = identify_input_sources(func, config)
    propagator = InfluencePropagator(build_def_use_graph(func), sources)
    influencing = propagator.influencing(branch.condition)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import (
    Deque,
    FrozenSet,
    Iterable,
    List,
    Set,
    Union,
)

from .defuse import DefUseGraph
from .ir import Function, Instruction, Value

logger = logging.getLogger(__name__)

TaintSet = FrozenSet[Value]
_Node = Union[Value, Instruction]


# ═══════════════════════════════════════════════════════════════════════════
#  CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_INPUT_FUNCTIONS: FrozenSet[str] = frozenset({
    # formatted input
    "scanf", "__isoc99_scanf",
    "fscanf", "__isoc99_fscanf",
    "sscanf", "__isoc99_sscanf",
    # line / character input
    "gets", "fgets", "getline",
    "getchar", "fgetc", "getc",
    # raw reads
    "read", "fread", "recv", "recvfrom",
    # environment
    "getenv",
})


@dataclass(frozen=True)
class TaintConfig:
    """
    Configuration for taint seeding.

    Attributes:
        input_functions: Names of calls whose arguments become tainted.
    """
    input_functions: FrozenSet[str] = field(
        default_factory=lambda: DEFAULT_INPUT_FUNCTIONS
    )

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "TaintConfig":
        """Configuration recognizing exactly *names*."""
        return cls(input_functions=frozenset(names))

    def with_functions(self, *names: str) -> "TaintConfig":
        """Copy of this configuration that also recognizes *names*."""
        return replace(self, input_functions=self.input_functions | frozenset(names))

    def without_functions(self, *names: str) -> "TaintConfig":
        return replace(self, input_functions=self.input_functions - frozenset(names))

    def is_input_function(self, name: str) -> bool:
        return name in self.input_functions


def create_default_config() -> TaintConfig:
    """The stock configuration: C standard-library input routines."""
    return TaintConfig()


# ═══════════════════════════════════════════════════════════════════════════
#  SOURCE IDENTIFICATION
# ═══════════════════════════════════════════════════════════════════════════

def identify_input_sources(function: Function, config: TaintConfig) -> TaintSet:
    """
    Collect every argument passed to a recognized input function.

    Only direct calls are considered; an indirect call has no name to match.
    """
    tainted: Set[Value] = set()
    for ins in function.instructions():
        if not ins.is_call or ins.target is None:
            continue
        if config.is_input_function(ins.target):
            tainted.update(ins.arguments)
            logger.debug(
                "%s: call to %s seeds %d value(s)",
                function.name, ins.target, len(ins.arguments),
            )
    return frozenset(tainted)


# ═══════════════════════════════════════════════════════════════════════════
#  PROPAGATION
# ═══════════════════════════════════════════════════════════════════════════

class InfluencePropagator:
    """
    Reachability over the def-use relation, treated as undirected.

    One propagator serves every query of an analysis run; it holds no state
    between queries.
    """

    def __init__(self, graph: DefUseGraph, sources: TaintSet) -> None:
        self.graph = graph
        self.sources = sources

    def _neighbours(self, node: _Node) -> List[_Node]:
        if isinstance(node, Instruction):
            out: List[_Node] = list(node.operands)
            if node.result is not None:
                out.append(node.result)
            return out
        out = []
        if node.definer is not None:
            out.extend(node.definer.operands)
        out.extend(self.graph.users_of(node))
        return out

    def reachable(self, start: Value) -> Set[Value]:
        """Every value connected to *start*, *start* included."""
        visited: Set[int] = set()
        values: Set[Value] = set()
        worklist: Deque[_Node] = deque([start])
        while worklist:
            node = worklist.popleft()
            if id(node) in visited:
                continue
            visited.add(id(node))
            if isinstance(node, Value):
                values.add(node)
            for nxt in self._neighbours(node):
                if id(nxt) not in visited:
                    worklist.append(nxt)
        return values

    def influencing(self, start: Value) -> TaintSet:
        """Tainted values connected to *start*."""
        if not self.sources:
            return frozenset()
        return frozenset(v for v in self.reachable(start) if v in self.sources)


__all__ = [
    "DEFAULT_INPUT_FUNCTIONS",
    "TaintConfig",
    "TaintSet",
    "create_default_config",
    "identify_input_sources",
    "InfluencePropagator",
]
