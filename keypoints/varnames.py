"""
keypoints/varnames.py — map IR values back to source variable names.

A local variable lives in a stack slot (the result of an ``alloca``); the
compiler records its name with a debug-declare that points at the slot.
Lookup is a linear scan over the function, first match wins.
"""

from __future__ import annotations

from typing import Optional

from .ir import Function, SourceVariable, Value


def resolve_source_variable(function: Function, value: Value) -> Optional[SourceVariable]:
    """Return the source variable declared for *value*, or ``None``."""
    if not value.is_stack_slot:
        return None
    for ins in function.instructions():
        if ins.is_debug_declare and ins.declared is value:
            return ins.variable
    return None


__all__ = ["resolve_source_variable"]
