"""
Report hand-off.

Turns a :class:`ComparisonReport` into plain data for external renderers
and saves it as JSON. Findings arrive keyed by owner in completion order;
everything is sorted here before presentation.
"""
import json
import logging
from pathlib import Path
from typing import Any

from .models import ComparisonReport, Finding

logger = logging.getLogger(__name__)


def _sorted_findings(findings: list[Finding]) -> list[Finding]:
    return sorted(findings, key=lambda item: (-item.score, item.subject.name, item.match.name))


def report_to_dict(report: ComparisonReport) -> dict[str, Any]:
    """
    Plain-data view of a report.

    Owners are sorted alphabetically, findings by descending score, then by
    subject and match name.
    """
    subject = report.subject
    return {
        "owner": subject.owner,
        "assignment": subject.assignment,
        "submissions": [
            {"name": item.name, "diagnostics": list(item.diagnostics)}
            for item in subject.submissions or []
        ],
        "findings": {
            owner: [
                {
                    "subject": finding.subject.name,
                    "match": finding.match.name,
                    "score": round(finding.score, 4),
                    "methods": [
                        {
                            "subject": method.subject.name,
                            "match": method.match.name,
                            "score": round(method.score, 4),
                        }
                        for method in finding.methods
                    ],
                }
                for finding in _sorted_findings(report.findings[owner])
            ]
            for owner in sorted(report.findings)
            if report.findings[owner]
        },
        "failures": {owner: report.failures[owner] for owner in sorted(report.failures)},
    }


def save_report(report: ComparisonReport, path: str | Path) -> Path:
    """
    Save a report as JSON.

    :param report: Comparison results
    :param path: Destination file
    :return: Path of the written file
    :exception OSError: Error while writing
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as file:
            json.dump(report_to_dict(report), file, ensure_ascii=False, indent=4)
    except OSError as e:
        logger.error(f"Error saving report to {path}: {e}")
        raise
    logger.info(f"Report saved to {path}")
    return path


def format_summary(report: ComparisonReport) -> str:
    """Short human-readable summary, one line per flagged pair."""
    subject = report.subject
    lines = [f"Lab {subject.owner}/{subject.assignment}: {report.flagged_count} suspicious matches"]
    for owner in sorted(report.findings):
        for finding in _sorted_findings(report.findings[owner]):
            lines.append(f"  {finding.subject.name} ↔ {owner}/{finding.match.name} ({finding.score:.2f})")
            for method in finding.methods:
                lines.append(f"      {method.subject.name} ↔ {method.match.name} ({method.score:.2f})")
    for owner in sorted(report.failures):
        lines.append(f"  ❌ comparison with {owner} failed: {report.failures[owner]}")
    return "\n".join(lines)
