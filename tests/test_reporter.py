# tests/test_reporter.py
"""Tests for finding rendering in every output format."""

import io
import json

import pytest

from keypoints.findings import (
    ConditionalBranch,
    IndirectCall,
    InfluencedLoopCondition,
    InfluencingVariable,
)
from keypoints.ir import DebugLocation
from keypoints.reporter import (
    FORMATS,
    Reporter,
    Severity,
    diagnostic_from_finding,
)


LOC = DebugLocation("t.c", 12)


def _findings():
    return [
        ConditionalBranch("br_1", DebugLocation("t.c", 5)),
        IndirectCall(DebugLocation("t.c", 7), "%fp"),
        InfluencedLoopCondition(
            LOC,
            (
                InfluencingVariable("x", DebugLocation("t.c", 2), resolved=True),
                InfluencingVariable("@.str"),
            ),
            header="cond",
        ),
    ]


def _render(fmt, findings=None):
    buf = io.StringIO()
    with Reporter(buf, fmt=fmt) as rep:
        rep.report("main", _findings() if findings is None else findings)
    return buf.getvalue(), rep


# ── Diagnostics ──────────────────────────────────────────────────

class TestDiagnostics:

    def test_key_lines(self):
        lines = [diagnostic_from_finding("main", f).key_line for f in _findings()]
        assert lines == [
            "t.c:5 - br_1",
            "t.c:7 - *func_%fp",
            "t.c:12 - loop condition influenced by: x (t.c:2), @.str",
        ]

    def test_key_line_without_location_has_no_prefix(self):
        diag = diagnostic_from_finding("f", IndirectCall(None, "%fp"))
        assert diag.key_line == "*func_%fp"

    def test_unlocated_loop_line_has_no_prefix(self):
        finding = InfluencedLoopCondition(
            None,
            (InfluencingVariable("x", DebugLocation("t.c", 2), resolved=True),),
        )
        out, _ = _render("plain", [finding])
        assert out.splitlines()[-1] == "loop condition influenced by: x (t.c:2)"

    def test_severity_per_kind(self):
        sevs = [diagnostic_from_finding("main", f).severity for f in _findings()]
        assert sevs == [Severity.INFORMATION, Severity.STYLE, Severity.WARNING]

    def test_loop_notes_name_each_variable(self):
        diag = diagnostic_from_finding("main", _findings()[2])
        assert [msg for msg, _ in diag.notes] == ["x: declared here", "@.str: raw value"]

    def test_non_finding_rejected(self):
        with pytest.raises((TypeError, AttributeError)):
            diagnostic_from_finding("main", object())


# ── Formats ──────────────────────────────────────────────────────

class TestFormats:

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            Reporter(io.StringIO(), fmt="xml")

    def test_plain(self):
        out, _ = _render("plain")
        assert out.splitlines() == [
            "Analyzing : main",
            "t.c:5 - br_1",
            "t.c:7 - *func_%fp",
            "t.c:12 - loop condition influenced by: x (t.c:2), @.str",
        ]

    def test_terminal_mentions_every_key_line(self):
        out, _ = _render("terminal")
        assert "Analyzing : main" in out
        assert "br_1" in out
        assert "*func_%fp" in out
        assert "1 input-influenced loop(s)" in out

    def test_json_document(self):
        out, _ = _render("json")
        doc = json.loads(out)
        assert doc["tool"]["name"] == "keypoints"
        assert [f["name"] for f in doc["functions"]] == ["main"]
        kinds = [f["kind"] for f in doc["functions"][0]["findings"]]
        assert kinds == ["conditionalBranch", "indirectCall", "inputInfluencedLoop"]
        assert doc["summary"]["total"] == 3
        loop = doc["functions"][0]["findings"][2]
        assert [v["name"] for v in loop["variables"]] == ["x", "@.str"]

    def test_json_lists_functions_without_findings(self):
        buf = io.StringIO()
        with Reporter(buf, fmt="json") as rep:
            rep.report("empty", [])
        doc = json.loads(buf.getvalue())
        assert doc["functions"] == [{"name": "empty", "findings": []}]

    def test_sarif_log(self):
        out, _ = _render("sarif")
        log = json.loads(out)
        assert log["version"] == "2.1.0"
        run = log["runs"][0]
        rule_ids = {r["id"] for r in run["tool"]["driver"]["rules"]}
        assert rule_ids == {"conditionalBranch", "indirectCall", "inputInfluencedLoop"}
        loop = run["results"][2]
        assert loop["level"] == "warning"
        assert loop["locations"][0]["physicalLocation"]["region"]["startLine"] == 12
        assert len(loop["relatedLocations"]) == 1

    def test_html_escapes_content(self):
        finding = IndirectCall(LOC, "<script>")
        out, _ = _render("html", [finding])
        assert "<!DOCTYPE html>" in out
        assert "<script>" not in out
        assert "&lt;script&gt;" in out

    @pytest.mark.parametrize("fmt", FORMATS)
    def test_every_format_renders(self, fmt):
        out, rep = _render(fmt)
        assert out
        assert rep.stats.total == 3


# ── Stats & lifecycle ────────────────────────────────────────────

class TestReporterLifecycle:

    def test_stats(self):
        _, rep = _render("plain")
        stats = rep.stats
        assert (stats.indirect_calls, stats.conditional_branches, stats.influenced_loops) == (1, 1, 1)
        assert stats.functions == 1
        assert stats.summary_line().startswith("3 key point(s) in 1 function(s)")

    def test_empty_summary(self):
        _, rep = _render("plain", [])
        assert rep.stats.summary_line() == "no key points found in 1 function(s)"

    def test_finish_is_idempotent(self):
        buf = io.StringIO()
        rep = Reporter(buf, fmt="json")
        rep.report("main", _findings())
        rep.finish()
        rep.finish()
        assert buf.getvalue().count('"tool"') == 1

    def test_report_returns_diagnostics(self):
        rep = Reporter(io.StringIO())
        diags = rep.report("main", _findings())
        assert [d.function for d in diags] == ["main"] * 3
        assert rep.diagnostics == diags
