# keypoints/errors.py
"""
Error types for the key-point analysis.

The analysis itself is total over well-formed input: missing debug
locations, unresolvable callees, unnamed values and loops without a
controlling branch all degrade into partial findings.  The exceptions below
are reserved for the cases where the *host* hands us something that breaks
its own contract, and for the outer surfaces (dump loading, pipeline
parsing).

Hierarchy
─────────
    KeyPointsError (base)
    ├── MalformedInputError   - program facade contract violated
    │   └── DumpFormatError   - JSON dump is structurally invalid
    └── UnknownPassError      - pipeline names an unregistered pass
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class KeyPointsError(Exception):
    """
    Base exception for all key-point analysis errors.

    Carries an optional ``where`` string (function / block / file context)
    and an optional ``hint`` that the CLI prints alongside the message.
    """

    def __init__(
        self,
        message: str,
        where: Optional[str] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.where = where
        self.hint = hint

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "where": self.where,
            "hint": self.hint,
        }

    def __str__(self) -> str:
        text = self.message
        if self.where:
            text = f"{self.where}: {text}"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


class MalformedInputError(KeyPointsError):
    """The program facade violated its contract (e.g. a loop whose header
    is not one of its own blocks)."""


class DumpFormatError(MalformedInputError):
    """A JSON dump could not be turned into a program model."""

    def __init__(
        self,
        message: str,
        where: Optional[str] = None,
        hint: str = "",
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message, where=where, hint=hint)
        self.path = path

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        return data


class UnknownPassError(KeyPointsError):
    """A pipeline description named a pass that is not registered."""

    def __init__(self, name: str, known: Optional[list] = None) -> None:
        hint = ""
        if known:
            hint = "known passes: " + ", ".join(sorted(known))
        super().__init__(f"unknown pass '{name}'", hint=hint)
        self.name = name


__all__ = [
    "KeyPointsError",
    "MalformedInputError",
    "DumpFormatError",
    "UnknownPassError",
]
