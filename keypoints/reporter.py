#!/usr/bin/env python3
"""
keypoints/reporter.py
═════════════════════

Rendering of key-point findings.

Output formats
──────────────
  • plain    : classic key-point lines, one per finding (default)
                   prog.c:12 - br_1
                   prog.c:20 - *func_%fp
                   prog.c:8 - loop condition influenced by: x (prog.c:3)
  • terminal : colourful rendering through termcolor
  • json     : one document with every finding, grouped by function
  • sarif    : SARIF 2.1.0
  • html     : single page rendered through a Jinja2 template

Usage
─────
    from keypoints.reporter import Reporter

    with Reporter(sys.stdout, fmt="plain") as rep:
        rep.report("main", findings)
"""

from __future__ import annotations

import enum
import json
import sys
import textwrap
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple

import jinja2
from termcolor import colored

from .findings import (
    ConditionalBranch,
    Finding,
    FindingKind,
    IndirectCall,
    InfluencedLoopCondition,
)
from .ir import DebugLocation

FORMATS = ("plain", "terminal", "json", "sarif", "html")


# ═════════════════════════════════════════════════════════════════════════
#  SEVERITY
# ═════════════════════════════════════════════════════════════════════════

class Severity(enum.Enum):
    """
    Diagnostic severity levels.

    Each carries:
      • label       — printed name
      • color       — termcolor colour name
      • sarif_level — SARIF 2.1.0 ``level`` string
    """

    WARNING = ("warning", "yellow", "warning")
    STYLE = ("style", "cyan", "note")
    INFORMATION = ("information", "white", "note")

    def __init__(self, label: str, color: str, sarif_level: str) -> None:
        self.label = label
        self.color = color
        self.sarif_level = sarif_level


_SEVERITY_BY_KIND = {
    FindingKind.INDIRECT_CALL: Severity.STYLE,
    FindingKind.CONDITIONAL_BRANCH: Severity.INFORMATION,
    FindingKind.INFLUENCED_LOOP: Severity.WARNING,
}


# ═════════════════════════════════════════════════════════════════════════
#  DIAGNOSTICS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class Diagnostic:
    """A finding prepared for output."""
    function: str
    severity: Severity
    error_id: str
    message: str
    key_line: str
    location: Optional[DebugLocation] = None
    notes: List[Tuple[str, Optional[DebugLocation]]] = field(default_factory=list)
    finding: Optional[Finding] = None


def _prefixed(loc: Optional[DebugLocation], text: str) -> str:
    return f"{loc.file}:{loc.line} - {text}" if loc is not None else text


def diagnostic_from_finding(function: str, finding: Finding) -> Diagnostic:
    severity = _SEVERITY_BY_KIND[finding.kind]
    if isinstance(finding, IndirectCall):
        text = f"*func_{finding.callee_description}"
        return Diagnostic(
            function, severity, finding.kind.value,
            f"indirect call through {finding.callee_description}",
            _prefixed(finding.location, text), finding.location, finding=finding,
        )
    if isinstance(finding, ConditionalBranch):
        return Diagnostic(
            function, severity, finding.kind.value,
            f"conditional branch {finding.branch_id} "
            f"({finding.successor_count} successors)",
            _prefixed(finding.location, finding.branch_id),
            finding.location, finding=finding,
        )
    if isinstance(finding, InfluencedLoopCondition):
        names = ", ".join(str(v) for v in finding.influencing_variables)
        diag = Diagnostic(
            function, severity, finding.kind.value,
            "loop condition depends on program input: "
            + ", ".join(finding.variable_names),
            _prefixed(finding.location, f"loop condition influenced by: {names}"),
            finding.location, finding=finding,
        )
        for var in finding.influencing_variables:
            label = "declared here" if var.resolved else "raw value"
            diag.notes.append((f"{var.name}: {label}", var.location))
        return diag
    raise TypeError(f"not a finding: {finding!r}")


@dataclass
class ReporterStats:
    """Counts per finding kind."""
    indirect_calls: int = 0
    conditional_branches: int = 0
    influenced_loops: int = 0
    functions: int = 0

    def record(self, finding: Finding) -> None:
        if finding.kind is FindingKind.INDIRECT_CALL:
            self.indirect_calls += 1
        elif finding.kind is FindingKind.CONDITIONAL_BRANCH:
            self.conditional_branches += 1
        else:
            self.influenced_loops += 1

    @property
    def total(self) -> int:
        return self.indirect_calls + self.conditional_branches + self.influenced_loops

    def summary_line(self) -> str:
        if not self.total:
            return f"no key points found in {self.functions} function(s)"
        return (
            f"{self.total} key point(s) in {self.functions} function(s): "
            f"{self.indirect_calls} indirect call(s), "
            f"{self.conditional_branches} conditional branch(es), "
            f"{self.influenced_loops} input-influenced loop(s)"
        )


# ═════════════════════════════════════════════════════════════════════════
#  RENDERERS
# ═════════════════════════════════════════════════════════════════════════

class _PlainRenderer:
    """One classic key-point line per finding."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def begin_function(self, name: str) -> None:
        self._stream.write(f"Analyzing : {name}\n")

    def render(self, diag: Diagnostic) -> None:
        self._stream.write(diag.key_line + "\n")

    def finish(self, stats: ReporterStats) -> None:
        self._stream.flush()


class _TerminalRenderer:
    """Colourful rendering for interactive terminals."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def begin_function(self, name: str) -> None:
        self._stream.write(colored(f"Analyzing : {name}", "white", attrs=["bold"]) + "\n")

    def render(self, diag: Diagnostic) -> None:
        lines: List[str] = []
        sev_str = colored(
            f"{diag.severity.label}[{diag.error_id}]", diag.severity.color, attrs=["bold"]
        )
        lines.append(f"{sev_str}: {colored(diag.message, 'white', attrs=['bold'])}")
        if diag.location is not None:
            arrow = colored("-->", "blue", attrs=["bold"])
            lines.append(f"  {arrow} {diag.location}")
        for message, loc in diag.notes:
            prefix = colored("note", "cyan", attrs=["bold"])
            suffix = f" ({loc})" if loc is not None else ""
            lines.append(f"  = {prefix}: {message}{suffix}")
        lines.append(colored(diag.key_line, attrs=["dark"]))
        lines.append("")
        self._stream.write("\n".join(lines) + "\n")

    def finish(self, stats: ReporterStats) -> None:
        colour = "yellow" if stats.influenced_loops else "green"
        self._stream.write(colored(f"  ╰─ {stats.summary_line()}", colour, attrs=["bold"]) + "\n")
        self._stream.flush()


class _JsonBuilder:
    """Accumulates findings and writes one JSON document."""

    def __init__(self, stream: TextIO, tool_name: str, version: str) -> None:
        self._stream = stream
        self._tool = {"name": tool_name, "version": version}
        self._functions: Dict[str, List[Dict[str, Any]]] = {}

    def begin_function(self, name: str) -> None:
        self._functions.setdefault(name, [])

    def render(self, diag: Diagnostic) -> None:
        entry = diag.finding.to_dict() if diag.finding is not None else {}
        entry["message"] = diag.message
        entry["severity"] = diag.severity.label
        self._functions.setdefault(diag.function, []).append(entry)

    def finish(self, stats: ReporterStats) -> None:
        doc = {
            "tool": self._tool,
            "functions": [
                {"name": name, "findings": entries}
                for name, entries in self._functions.items()
            ],
            "summary": {
                "indirect_calls": stats.indirect_calls,
                "conditional_branches": stats.conditional_branches,
                "influenced_loops": stats.influenced_loops,
                "total": stats.total,
            },
        }
        self._stream.write(json.dumps(doc, indent=2) + "\n")
        self._stream.flush()


class _SarifBuilder:
    """Accumulates diagnostics and writes a SARIF 2.1.0 log."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )
    _RULE_TEXT = {
        FindingKind.INDIRECT_CALL.value: "Indirect call site",
        FindingKind.CONDITIONAL_BRANCH.value: "Conditional branch",
        FindingKind.INFLUENCED_LOOP.value: "Loop condition influenced by program input",
    }

    def __init__(self, stream: TextIO, tool_name: str, version: str) -> None:
        self._stream = stream
        self._tool_name = tool_name
        self._version = version
        self._results: List[Dict[str, Any]] = []
        self._rules: Dict[str, Dict[str, Any]] = {}

    def begin_function(self, name: str) -> None:
        pass

    def render(self, diag: Diagnostic) -> None:
        if diag.error_id not in self._rules:
            self._rules[diag.error_id] = {
                "id": diag.error_id,
                "shortDescription": {
                    "text": self._RULE_TEXT.get(diag.error_id, diag.error_id)
                },
            }
        result: Dict[str, Any] = {
            "ruleId": diag.error_id,
            "level": diag.severity.sarif_level,
            "message": {"text": diag.message},
            "properties": {"function": diag.function},
        }
        if diag.location is not None:
            result["locations"] = [{"physicalLocation": self._physical(diag.location)}]
        related = [
            {"id": idx, "message": {"text": msg}, "physicalLocation": self._physical(loc)}
            for idx, (msg, loc) in enumerate(diag.notes)
            if loc is not None
        ]
        if related:
            result["relatedLocations"] = related
        self._results.append(result)

    @staticmethod
    def _physical(loc: DebugLocation) -> Dict[str, Any]:
        region: Dict[str, Any] = {"startLine": loc.line}
        if loc.column:
            region["startColumn"] = loc.column
        return {"artifactLocation": {"uri": loc.file}, "region": region}

    def finish(self, stats: ReporterStats) -> None:
        sarif = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [{
                "tool": {"driver": {
                    "name": self._tool_name,
                    "version": self._version,
                    "rules": list(self._rules.values()),
                }},
                "results": self._results,
            }],
        }
        self._stream.write(json.dumps(sarif, indent=2) + "\n")
        self._stream.flush()


class _HtmlBuilder:
    """Accumulates diagnostics and renders them through Jinja2."""

    def __init__(self, stream: TextIO, template: Optional[str] = None) -> None:
        self._stream = stream
        self._template = template or _DEFAULT_HTML_TEMPLATE
        self._diagnostics: List[Dict[str, Any]] = []

    def begin_function(self, name: str) -> None:
        pass

    def render(self, diag: Diagnostic) -> None:
        loc = diag.location
        self._diagnostics.append({
            "function": diag.function,
            "severity": diag.severity.label,
            "error_id": diag.error_id,
            "message": diag.message,
            "file": loc.file if loc else "",
            "line": loc.line if loc else 0,
            "notes": [
                {"message": msg, "file": nloc.file if nloc else "",
                 "line": nloc.line if nloc else 0}
                for msg, nloc in diag.notes
            ],
        })

    def finish(self, stats: ReporterStats) -> None:
        env = jinja2.Environment(autoescape=True)
        tmpl = env.from_string(self._template)
        self._stream.write(tmpl.render(
            diagnostics=self._diagnostics,
            total=len(self._diagnostics),
            summary=stats.summary_line(),
        ))
        self._stream.flush()


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER  (main entry point)
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """
    Central finding dispatcher.

    Use as a context manager::

        with Reporter(sys.stdout, fmt="json") as rep:
            rep.report("main", findings)
        # finish() is called automatically
    """

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        fmt: str = "plain",
        tool_name: str = "keypoints",
        tool_version: str = "0.1.0",
        html_template: Optional[str] = None,
    ) -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unknown format: {fmt}")
        self.fmt = fmt
        self.stats = ReporterStats()
        self.diagnostics: List[Diagnostic] = []
        if fmt == "plain":
            self._renderer: Any = _PlainRenderer(stream)
        elif fmt == "terminal":
            self._renderer = _TerminalRenderer(stream)
        elif fmt == "json":
            self._renderer = _JsonBuilder(stream, tool_name, tool_version)
        elif fmt == "sarif":
            self._renderer = _SarifBuilder(stream, tool_name, tool_version)
        else:
            self._renderer = _HtmlBuilder(stream, html_template)
        self._finished = False

    def __enter__(self) -> "Reporter":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self.finish()

    def report(self, function: str, findings: Sequence[Finding]) -> List[Diagnostic]:
        """Render every finding of *function*; return the diagnostics."""
        self.stats.functions += 1
        self._renderer.begin_function(function)
        out = []
        for finding in findings:
            diag = diagnostic_from_finding(function, finding)
            self.stats.record(finding)
            self.diagnostics.append(diag)
            self._renderer.render(diag)
            out.append(diag)
        return out

    def finish(self) -> ReporterStats:
        if not self._finished:
            self._finished = True
            self._renderer.finish(self.stats)
        return self.stats


_DEFAULT_HTML_TEMPLATE = textwrap.dedent("""\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Key Point Report</title>
  <style>
    body { font-family: monospace; background: #1e1e2e; color: #cdd6f4; padding: 2rem; }
    .card { background: #313244; border-radius: 8px; padding: 1rem; margin-bottom: 1rem; }
    .sev-warning { border-left: 4px solid #f9e2af; }
    .sev-style { border-left: 4px solid #89dceb; }
    .sev-information { border-left: 4px solid #cdd6f4; }
    .loc { color: #89b4fa; }
    .note { color: #89dceb; font-size: 0.9em; }
    .summary { margin-top: 2rem; text-align: center; }
  </style>
</head>
<body>
  <h1>Key Point Report</h1>
  {% for d in diagnostics %}
  <div class="card sev-{{ d.severity }}">
    <code>[{{ d.error_id }}]</code> <b>{{ d.function }}</b>
    {% if d.file %}<span class="loc">{{ d.file }}:{{ d.line }}</span>{% endif %}
    <div>{{ d.message }}</div>
    {% for n in d.notes %}
      <div class="note">note: {{ n.message }}{% if n.file %} ({{ n.file }}:{{ n.line }}){% endif %}</div>
    {% endfor %}
  </div>
  {% endfor %}
  <div class="summary">{{ total }} finding{{ 's' if total != 1 else '' }}. {{ summary }}</div>
</body>
</html>
""")


__all__ = [
    "FORMATS",
    "Severity",
    "Diagnostic",
    "ReporterStats",
    "Reporter",
    "diagnostic_from_finding",
]
