"""
keypoints/passes.py
═══════════════════

Host-facing entry points.

A host pipeline runs analyses as *passes* over functions.  The key-point
pass is read-only: every run reports :attr:`PreservedAnalyses.ALL`, telling
the host nothing it cached about the function has been invalidated.

Passes are looked up by pipeline name through a :class:`PassRegistry`; the
built-in pass registers as ``"key-points-pass"``::

    from keypoints.passes import default_registry

    for p in default_registry().parse_pipeline("key-points-pass"):
        result = p.run(func)
        for finding in result.findings:
            ...

For one-off use, :func:`analyze` returns the findings directly.
"""

from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .detector import KeyPointDetector
from .errors import UnknownPassError
from .findings import Finding
from .ir import Function, Module
from .taint_analysis import TaintConfig, create_default_config

logger = logging.getLogger(__name__)

KEY_POINTS_PASS_NAME = "key-points-pass"


class PreservedAnalyses(enum.Enum):
    """What a pass leaves valid for the host."""
    ALL = "all"
    NONE = "none"


@dataclass
class PassResult:
    findings: List[Finding] = field(default_factory=list)
    preserved: PreservedAnalyses = PreservedAnalyses.ALL


class KeyPointsPass:
    """Function pass reporting key points; never modifies the function."""

    name = KEY_POINTS_PASS_NAME

    def __init__(self, config: Optional[TaintConfig] = None) -> None:
        self.config = config or create_default_config()
        self._detector = KeyPointDetector(self.config)

    def run(self, function: Function) -> PassResult:
        logger.info("Analyzing : %s", function.name)
        findings = self._detector.detect(function)
        return PassResult(findings=findings, preserved=PreservedAnalyses.ALL)

    def __repr__(self) -> str:
        return f"KeyPointsPass(sources={len(self.config.input_functions)})"


def analyze(function: Function, config: Optional[TaintConfig] = None) -> List[Finding]:
    """Analyze one function.  Makes no changes to *function*."""
    return KeyPointsPass(config).run(function).findings


# ═══════════════════════════════════════════════════════════════════════════
#  PASS REGISTRY
# ═══════════════════════════════════════════════════════════════════════════

PassFactory = Callable[[TaintConfig], KeyPointsPass]


class PassRegistry:
    """Pipeline name → pass factory."""

    def __init__(self) -> None:
        self._factories: Dict[str, PassFactory] = {}

    def register(self, name: str, factory: PassFactory) -> None:
        self._factories[name] = factory

    def names(self) -> List[str]:
        return sorted(self._factories)

    def create(self, name: str, config: Optional[TaintConfig] = None) -> KeyPointsPass:
        try:
            factory = self._factories[name]
        except KeyError:
            raise UnknownPassError(name, known=self.names()) from None
        return factory(config or create_default_config())

    def parse_pipeline(
        self, pipeline: str, config: Optional[TaintConfig] = None
    ) -> List[KeyPointsPass]:
        """Instantiate a comma-separated list of pass names."""
        names = [part.strip() for part in pipeline.split(",") if part.strip()]
        return [self.create(n, config) for n in names]

    def __contains__(self, name: object) -> bool:
        return name in self._factories


def default_registry() -> PassRegistry:
    registry = PassRegistry()
    registry.register(KEY_POINTS_PASS_NAME, KeyPointsPass)
    return registry


# ═══════════════════════════════════════════════════════════════════════════
#  MODULE DRIVER
# ═══════════════════════════════════════════════════════════════════════════

def analyze_module(
    module: Module,
    config: Optional[TaintConfig] = None,
    jobs: int = 1,
    passes: Optional[Sequence[KeyPointsPass]] = None,
    functions: Optional[Sequence[Function]] = None,
) -> Dict[str, List[Finding]]:
    """
    Run a pass pipeline over every function of *module*.

    *passes* defaults to a single key-point pass built from *config*;
    *functions* restricts the run to a subset of the module.  Each function
    gets its own pipeline run, so with ``jobs > 1`` functions are analyzed
    concurrently.  The result keeps the module's function order.
    """
    pipeline = list(passes) if passes is not None else [KeyPointsPass(config)]
    selected = list(module.functions if functions is None else functions)

    def run_pipeline(fn: Function) -> List[Finding]:
        findings: List[Finding] = []
        for p in pipeline:
            findings.extend(p.run(fn).findings)
        return findings

    if jobs <= 1 or len(selected) <= 1:
        results = [run_pipeline(fn) for fn in selected]
    else:
        logger.debug("analyzing %d functions with %d workers", len(selected), jobs)
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            results = list(pool.map(run_pipeline, selected))
    return {fn.name: res for fn, res in zip(selected, results)}


__all__ = [
    "KEY_POINTS_PASS_NAME",
    "PreservedAnalyses",
    "PassResult",
    "KeyPointsPass",
    "analyze",
    "PassRegistry",
    "default_registry",
    "analyze_module",
]
