"""
keypoints — Key-point discovery for function-level IR
=====================================================

Finds the places in a function worth instrumenting: indirect calls,
conditional branches (numbered ``br_1``, ``br_2``, …) and loop conditions
whose value is connected to program input through the def-use relation.

Core modules
------------
ir
    Program model (values, instructions, blocks, loops, functions) and a
    :class:`FunctionBuilder` for constructing functions in code.
ir_dump
    Loader for the JSON IR dump format.
loops
    Dominators and natural-loop discovery.
defuse
    Def-use graph construction.
taint_analysis
    Input-source identification and influence propagation.
varnames
    Mapping of stack slots back to source variable names.
findings
    Finding records produced by the detector.
detector
    The key-point detector.
passes
    Pass surface, pass registry and the module driver.
reporter
    Plain, terminal, JSON, SARIF and HTML output.

Quick start
-----------
>>> from keypoints import FunctionBuilder, analyze
>>> b = FunctionBuilder("f", source_file="t.c", params=["fp"])
>>> entry = b.block("entry")
>>> fp = b.param(0)
>>> _ = b.call_indirect(fp, [], line=2)
>>> _ = b.ret()
>>> [type(f).__name__ for f in analyze(b.build())]
['IndirectCall']
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Dict, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_re-export)
# ---------------------------------------------------------------------------

_CORE_MODULES: Dict[str, List[str]] = {
    "errors": [
        "KeyPointsError",
        "MalformedInputError",
        "DumpFormatError",
        "UnknownPassError",
    ],
    "ir": [
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
    ],
    "ir_dump": [
        "load_dump",
        "loads_dump",
        "module_from_dict",
    ],
    "loops": [
        "find_natural_loops",
        "validate_loop",
    ],
    "defuse": [
        "DefUseGraph",
        "build_def_use_graph",
    ],
    "taint_analysis": [
        "DEFAULT_INPUT_FUNCTIONS",
        "TaintConfig",
        "create_default_config",
        "identify_input_sources",
        "InfluencePropagator",
    ],
    "varnames": [
        "resolve_source_variable",
    ],
    "findings": [
        "FindingKind",
        "InfluencingVariable",
        "IndirectCall",
        "ConditionalBranch",
        "InfluencedLoopCondition",
    ],
    "detector": [
        "KeyPointDetector",
        "detect_key_points",
    ],
    "passes": [
        "KEY_POINTS_PASS_NAME",
        "PreservedAnalyses",
        "PassResult",
        "KeyPointsPass",
        "PassRegistry",
        "analyze",
        "analyze_module",
        "default_registry",
    ],
    "reporter": [
        "Reporter",
        "Severity",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    A missing submodule or symbol is an installation error and propagates.
    """
    mod = importlib.import_module(f"{__name__}.{module_rel_name}")
    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"keypoints.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    # keypoints.ir.Function works as well as keypoints.Function
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

__all__.append("__version__")


def list_submodules() -> List[str]:
    """Return the names of the package's analysis submodules."""
    return sorted(_CORE_MODULES)
