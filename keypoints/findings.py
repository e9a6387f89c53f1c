"""
keypoints/findings.py
═════════════════════

Structured results of the key-point analysis.

    Finding
    ├── IndirectCall             call through a function pointer
    ├── ConditionalBranch        conditional branch with a source location
    └── InfluencedLoopCondition  loop condition connected to program input

Findings are plain frozen records; rendering lives in
:mod:`keypoints.reporter`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .ir import DebugLocation


class FindingKind(enum.Enum):
    INDIRECT_CALL = "indirectCall"
    CONDITIONAL_BRANCH = "conditionalBranch"
    INFLUENCED_LOOP = "inputInfluencedLoop"


def _loc_dict(loc: Optional[DebugLocation]) -> Optional[Dict[str, Any]]:
    if loc is None:
        return None
    return {"file": loc.file, "line": loc.line, "column": loc.column}


@dataclass(frozen=True)
class InfluencingVariable:
    """
    One input-influenced value participating in a loop condition.

    ``name`` is the source variable name when a debug-declare was found
    (``resolved``), the raw IR description otherwise.
    """
    name: str
    location: Optional[DebugLocation] = None
    resolved: bool = False

    def __str__(self) -> str:
        if self.location is not None:
            return f"{self.name} ({self.location})"
        return self.name


@dataclass(frozen=True)
class IndirectCall:
    location: Optional[DebugLocation]
    callee_description: str
    kind: FindingKind = field(default=FindingKind.INDIRECT_CALL, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "location": _loc_dict(self.location),
            "callee": self.callee_description,
        }


@dataclass(frozen=True)
class ConditionalBranch:
    branch_id: str
    location: DebugLocation
    successor_count: int = 2
    kind: FindingKind = field(default=FindingKind.CONDITIONAL_BRANCH, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "id": self.branch_id,
            "location": _loc_dict(self.location),
            "successors": self.successor_count,
        }


@dataclass(frozen=True)
class InfluencedLoopCondition:
    location: Optional[DebugLocation]
    influencing_variables: Tuple[InfluencingVariable, ...]
    header: str = ""
    kind: FindingKind = field(default=FindingKind.INFLUENCED_LOOP, init=False)

    @property
    def variable_names(self) -> Tuple[str, ...]:
        return tuple(v.name for v in self.influencing_variables)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "location": _loc_dict(self.location),
            "header": self.header,
            "variables": [
                {
                    "name": v.name,
                    "location": _loc_dict(v.location),
                    "resolved": v.resolved,
                }
                for v in self.influencing_variables
            ],
        }


Finding = Union[IndirectCall, ConditionalBranch, InfluencedLoopCondition]


def presentation_order(
    variables: Iterable[InfluencingVariable],
) -> Tuple[InfluencingVariable, ...]:
    """Named variables first, by declaration site; raw values after, by text."""
    def key(v: InfluencingVariable):
        if v.resolved:
            loc = v.location
            return (0, loc.file if loc else "", loc.line if loc else 0, v.name)
        return (1, "", 0, v.name)
    return tuple(sorted(variables, key=key))


__all__ = [
    "FindingKind",
    "InfluencingVariable",
    "IndirectCall",
    "ConditionalBranch",
    "InfluencedLoopCondition",
    "Finding",
    "presentation_order",
]
