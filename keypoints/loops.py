"""
keypoints.loops
===============

Loop structure for a :class:`~keypoints.ir.Function`.

Hosts normally supply loops already computed (``Function.loops``).  When
they do not, for example for a dump without a ``loops`` section,
:func:`find_natural_loops` recovers them from the block graph:

* dominators by the classic iterative algorithm over blocks reachable from
  the entry block,
* a back edge is ``src → dst`` where ``dst`` dominates ``src``,
* the natural loop of a back edge is ``dst`` plus every block that reaches
  ``src`` without passing through ``dst``; back edges sharing a header are
  merged into one loop.

Public API
----------
    dominators          - block label → set of dominating labels
    back_edges          - list of (src, dst) label pairs
    find_natural_loops  - loops in header program order
    validate_loop       - raise MalformedInputError on contract violations
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set, Tuple

from .errors import MalformedInputError
from .ir import Function, Loop

logger = logging.getLogger(__name__)


def _reachable(function: Function) -> List[str]:
    """Labels reachable from the entry block, in program order."""
    if not function.blocks:
        return []
    seen: Set[str] = set()
    worklist = [function.blocks[0].label]
    while worklist:
        label = worklist.pop()
        if label in seen:
            continue
        seen.add(label)
        worklist.extend(function.successors_of(label))
    return [lbl for lbl in function.block_labels if lbl in seen]


def dominators(function: Function) -> Dict[str, Set[str]]:
    """Compute dominator sets for blocks reachable from the entry."""
    labels = _reachable(function)
    if not labels:
        return {}
    entry = labels[0]
    preds: Dict[str, List[str]] = {lbl: [] for lbl in labels}
    for lbl in labels:
        for succ in function.successors_of(lbl):
            if succ in preds:
                preds[succ].append(lbl)

    all_nodes = set(labels)
    dom: Dict[str, Set[str]] = {lbl: set(all_nodes) for lbl in labels}
    dom[entry] = {entry}
    changed = True
    while changed:
        changed = False
        for n in labels:
            if n == entry:
                continue
            if preds[n]:
                new_dom = set.intersection(*(dom[p] for p in preds[n])) | {n}
            else:
                new_dom = {n}
            if new_dom != dom[n]:
                dom[n] = new_dom
                changed = True
    return dom


def back_edges(function: Function) -> List[Tuple[str, str]]:
    """Edges whose destination dominates their source."""
    dom = dominators(function)
    edges = []
    for src in dom:
        for dst in function.successors_of(src):
            if dst in dom.get(src, set()):
                edges.append((src, dst))
    return edges


def find_natural_loops(function: Function) -> List[Loop]:
    """Return one loop per header, ordered by the header's block position."""
    # Unreachable blocks never join a loop body.
    reachable = _reachable(function)
    preds: Dict[str, List[str]] = {lbl: [] for lbl in reachable}
    for lbl in reachable:
        for succ in function.successors_of(lbl):
            preds[succ].append(lbl)

    bodies: Dict[str, Set[str]] = {}
    for src, header in back_edges(function):
        body = bodies.setdefault(header, {header})
        stack = [src]
        while stack:
            m = stack.pop()
            if m not in body:
                body.add(m)
                stack.extend(preds[m])

    order = function.block_labels
    loops = [
        Loop(header, frozenset(bodies[header]))
        for header in sorted(bodies, key=order.index)
    ]
    logger.debug("%s: discovered %d natural loop(s)", function.name, len(loops))
    return loops


def validate_loop(function: Function, loop: Loop) -> None:
    """Check the host's loop contract; raise :class:`MalformedInputError`."""
    where = f"function {function.name}"
    if loop.header not in loop.blocks:
        raise MalformedInputError(
            f"loop header '{loop.header}' is not a member of its own loop",
            where=where,
        )
    labels = set(function.block_labels)
    missing = sorted(loop.blocks - labels)
    if missing:
        raise MalformedInputError(
            f"loop with header '{loop.header}' names unknown block(s): "
            + ", ".join(missing),
            where=where,
        )


__all__ = [
    "dominators",
    "back_edges",
    "find_natural_loops",
    "validate_loop",
]
