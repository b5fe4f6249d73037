"""Parity report model and its markdown / JSON / JUnit XML renderings."""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from carbonfin.parity.comparator import ComparisonResult
from carbonfin.parity.invariants import InvariantResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class StatementComparison:
    comparisons: List[ComparisonResult] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for c in self.comparisons if c.match)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "comparisons": [c.to_dict() for c in self.comparisons],
            "missing_fields": list(self.missing_fields),
        }


@dataclass
class ParityReport:
    scenario: str
    timestamp: str
    statements: Dict[str, StatementComparison] = field(default_factory=dict)
    invariants: List[InvariantResult] = field(default_factory=list)
    error: Optional[str] = None

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    @property
    def comparisons(self) -> List[ComparisonResult]:
        return [c for s in self.statements.values() for c in s.comparisons]

    @property
    def missing_fields(self) -> List[str]:
        return [m for s in self.statements.values() for m in s.missing_fields]

    @property
    def summary(self) -> Dict[str, Any]:
        comparisons = self.comparisons
        total = len(comparisons)
        passed = sum(1 for c in comparisons if c.match)
        missing = len(self.missing_fields)
        completeness = 1.0 if missing == 0 else total / (total + missing)
        return {
            "total_comparisons": total,
            "passed": passed,
            "failed": total - passed,
            "completeness": completeness,
        }

    @property
    def overall(self) -> str:
        summary = self.summary
        ok = (
            self.error is None
            and summary["failed"] == 0
            and summary["completeness"] == 1.0
            and all(i.passed for i in self.invariants)
        )
        return "PASS" if ok else "FAIL"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "timestamp": self.timestamp,
            "summary": self.summary,
            "statements": {k: v.to_dict() for k, v in self.statements.items()},
            "invariants": [i.to_dict() for i in self.invariants],
            "error": self.error,
            "overall": self.overall,
        }


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _pct(part: int, whole: int) -> str:
    return f"{(100.0 * part / whole):.1f}%" if whole else "n/a"


def generate_markdown_report(report: ParityReport) -> str:
    summary = report.summary
    total = summary["total_comparisons"]
    lines = [
        f"# Model Parity Report: {report.scenario}",
        "",
        f"**Generated:** {report.timestamp}",
        f"**Overall Status:** {report.overall}",
        "",
    ]
    if report.error:
        lines += [f"**Error:** {report.error}", ""]

    lines += [
        "## Summary",
        "",
        f"- **Total Comparisons:** {total}",
        f"- **Passed:** {summary['passed']} ({_pct(summary['passed'], total)})",
        f"- **Failed:** {summary['failed']} ({_pct(summary['failed'], total)})",
        f"- **Completeness:** {summary['completeness'] * 100:.1f}%",
        "",
        "## Financial Statements",
        "",
    ]

    for table, data in report.statements.items():
        lines += [f"### {table.replace('_', ' ').upper()}", ""]
        if data.missing_fields:
            lines += [f"**Missing Fields:** {', '.join(data.missing_fields)}", ""]
        if data.comparisons:
            lines.append("| Field | Year | Reference | Engine | Status | Delta |")
            lines.append("|-------|------|-----------|--------|--------|-------|")
            for c in data.comparisons:
                delta = f"{c.delta:.4f}" if c.delta is not None else "n/a"
                year = str(c.year) if c.year is not None else "n/a"
                status = "PASS" if c.match else "FAIL"
                lines.append(
                    f"| {c.field} | {year} | {c.reference} | {c.engine} | {status} | {delta} |"
                )
            lines.append("")

    lines += ["## Invariants", ""]
    for inv in report.invariants:
        lines.append(f"- **{inv.name}:** {'PASS' if inv.passed else 'FAIL'} {inv.description}")
        if inv.details:
            lines.append(f"  - {inv.details}")

    return "\n".join(lines) + "\n"


def generate_junit_xml(report: ParityReport) -> str:
    """One testcase per comparison, missing field and invariant."""
    suite = ET.Element("testsuite", name=f"ModelParity:{report.scenario}")
    tests = 0
    failures = 0

    if report.error:
        case = ET.SubElement(suite, "testcase", classname="parity", name="run")
        ET.SubElement(case, "error", message=report.error)
        tests += 1
        failures += 1

    for table, data in report.statements.items():
        for c in data.comparisons:
            name = f"{table}.{c.field}" + (f".{c.year}" if c.year is not None else "")
            case = ET.SubElement(suite, "testcase", classname=table, name=name)
            tests += 1
            if not c.match:
                failures += 1
                ET.SubElement(
                    case,
                    "failure",
                    message=f"Reference={c.reference} Engine={c.engine} Delta={c.delta}",
                )
        for missing in data.missing_fields:
            case = ET.SubElement(suite, "testcase", classname=table, name=f"{table}.{missing}")
            ET.SubElement(case, "failure", message="missing in engine output")
            tests += 1
            failures += 1

    for inv in report.invariants:
        case = ET.SubElement(suite, "testcase", classname="invariant", name=inv.name)
        tests += 1
        if not inv.passed:
            failures += 1
            message = inv.description + (f" :: {inv.details}" if inv.details else "")
            ET.SubElement(case, "failure", message=message)

    suite.set("tests", str(tests))
    suite.set("failures", str(failures))
    body = ET.tostring(suite, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"


def save_reports(report: ParityReport, output_dir: PathLike) -> Dict[str, Path]:
    """Write ``<scenario>.md``, ``.json`` and ``.junit.xml`` under output_dir."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    paths = {
        "markdown": out / f"{report.scenario}.md",
        "json": out / f"{report.scenario}.json",
        "junit": out / f"{report.scenario}.junit.xml",
    }
    paths["markdown"].write_text(generate_markdown_report(report), encoding="utf-8")
    paths["json"].write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    paths["junit"].write_text(generate_junit_xml(report), encoding="utf-8")
    logger.info("Parity reports for %s written to %s", report.scenario, out)
    return paths


__all__ = [
    "ParityReport",
    "StatementComparison",
    "generate_markdown_report",
    "generate_junit_xml",
    "save_reports",
]
