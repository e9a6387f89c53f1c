"""
keypoints/detector.py
═════════════════════

Key point detection for one function.

Three independent sweeps share nothing but the per-run state built up
front (def-use graph, taint set, branch counter):

    ┌──────────────────────────────────────────────────────────────┐
    │ 1. indirect calls        every call without a direct target  │
    │ 2. conditional branches  numbered br_1, br_2, … when located │
    │ 3. loop conditions       header branch condition reaches a   │
    │                          tainted value in the def-use graph  │
    └──────────────────────────────────────────────────────────────┘

Sweeps 1 and 2 walk the instructions once, in program order.  Sweep 3
walks the function's loops in the order the host supplied them.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .defuse import DefUseGraph, build_def_use_graph
from .findings import (
    ConditionalBranch,
    Finding,
    IndirectCall,
    InfluencedLoopCondition,
    InfluencingVariable,
    presentation_order,
)
from .ir import Function, Instruction, InstrKind, Loop, strip_pointer_casts
from .loops import validate_loop
from .taint_analysis import (
    InfluencePropagator,
    TaintConfig,
    TaintSet,
    create_default_config,
    identify_input_sources,
)
from .varnames import resolve_source_variable

logger = logging.getLogger(__name__)


@dataclass
class AnalysisRun:
    """State owned by one detection run over one function."""
    function: Function
    graph: DefUseGraph
    sources: TaintSet
    branch_ids: Iterator[int] = field(default_factory=lambda: itertools.count(1))

    def next_branch_id(self) -> str:
        return f"br_{next(self.branch_ids)}"


class KeyPointDetector:
    """
    Finds indirect calls, located conditional branches and input-influenced
    loop conditions.

    Usage::

        detector = KeyPointDetector(create_default_config())
        findings = detector.detect(func)
    """

    def __init__(self, config: Optional[TaintConfig] = None) -> None:
        self.config = config or create_default_config()

    def prepare(self, function: Function) -> AnalysisRun:
        """Build the def-use graph and taint set for *function*."""
        return AnalysisRun(
            function=function,
            graph=build_def_use_graph(function),
            sources=identify_input_sources(function, self.config),
        )

    def detect(self, function: Function) -> List[Finding]:
        """
        Return the key points of *function*.

        Order: indirect calls and conditional branches first, interleaved
        in program order; then loop findings in ``function.loops`` order.
        A loop finding does not sit at its header branch's program
        position, even though it carries that branch's location.
        """
        run = self.prepare(function)
        findings: List[Finding] = list(self._instruction_sweep(run))
        propagator = InfluencePropagator(run.graph, run.sources)
        for loop in function.loops:
            finding = self._check_loop(run, propagator, loop)
            if finding is not None:
                findings.append(finding)
        return findings

    # ── sweeps 1 & 2 ─────────────────────────────────────────────────

    def _instruction_sweep(self, run: AnalysisRun) -> Iterator[Finding]:
        for ins in run.function.instructions():
            if ins.kind is InstrKind.CALL:
                if ins.target is None:
                    yield self._indirect_call(ins)
            elif ins.kind is InstrKind.BRANCH:
                if ins.condition is not None and ins.location is not None:
                    yield ConditionalBranch(
                        branch_id=run.next_branch_id(),
                        location=ins.location,
                        successor_count=len(ins.successors),
                    )

    @staticmethod
    def _indirect_call(ins: Instruction) -> IndirectCall:
        if ins.callee is not None:
            description = strip_pointer_casts(ins.callee).describe()
        else:
            description = "<unknown>"
        return IndirectCall(location=ins.location, callee_description=description)

    # ── sweep 3 ───────────────────────────────────────────────────────

    def _check_loop(
        self,
        run: AnalysisRun,
        propagator: InfluencePropagator,
        loop: Loop,
    ) -> Optional[InfluencedLoopCondition]:
        function = run.function
        validate_loop(function, loop)
        header = function.block(loop.header)
        branch = next((i for i in header.instructions if i.is_conditional), None)
        if branch is None:
            logger.debug(
                "%s: loop %s has no conditional branch in its header",
                function.name, loop.header,
            )
            return None

        influencing = propagator.influencing(branch.condition)
        if not influencing:
            logger.debug("%s: loop %s condition not input-influenced",
                         function.name, loop.header)
            return None

        variables = []
        for value in influencing:
            var = resolve_source_variable(function, value)
            if var is not None:
                variables.append(InfluencingVariable(var.name, var.location, True))
            else:
                variables.append(InfluencingVariable(value.describe()))
        logger.debug("%s: loop %s influenced by %d value(s)",
                     function.name, loop.header, len(variables))
        return InfluencedLoopCondition(
            location=branch.location,
            influencing_variables=presentation_order(variables),
            header=loop.header,
        )


def detect_key_points(
    function: Function, config: Optional[TaintConfig] = None
) -> List[Finding]:
    """Run :class:`KeyPointDetector` with *config* over *function*."""
    return KeyPointDetector(config).detect(function)


__all__ = ["AnalysisRun", "KeyPointDetector", "detect_key_points"]
