"""
Read-only report views.

Markdown and JSON renderings of ComplianceReport and DriftReport.

PRESENTATION ONLY:
- Pure functions of the record
- No added semantics
"""

from __future__ import annotations

from typing import List

from compliance_auditor.app.schemas.compliance_report import ComplianceReport
from compliance_auditor.app.schemas.drift_report import DriftReport
from compliance_auditor.app.schemas.findings import CorroboratedFinding


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.0f}%"


def _duration(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


def _first_location(corroborated: CorroboratedFinding) -> str:
    locations = corroborated.finding.locations
    if not locations:
        return "unknown"
    return f"{locations[0].file}:{locations[0].start_line}"


# ----------------------------------------------------------------------
# Compliance report
# ----------------------------------------------------------------------


def _finding_markdown(corroborated: CorroboratedFinding) -> str:
    finding = corroborated.finding
    corroboration = (
        f" (corroborated x{corroborated.corroborations})"
        if corroborated.corroborations > 1
        else ""
    )

    lines = [
        f"### {finding.severity.value.upper()}: {finding.title}{corroboration}",
        "",
        f"- **Rule:** {finding.rule_id}",
        f"- **Confidence:** {_pct(corroborated.effective_confidence)}",
    ]

    for location in finding.locations:
        end = f"-{location.end_line}" if location.end_line else ""
        lines.append(f"- **Location:** `{location.file}:{location.start_line}{end}`")

    if finding.description:
        lines.extend(["", finding.description])
    if finding.evidence:
        lines.extend(["", f"**Evidence:** {finding.evidence}"])
    if finding.remediation:
        lines.extend(["", f"**Remediation:** {finding.remediation}"])

    return "\n".join(lines)


def generate_compliance_markdown(report: ComplianceReport) -> str:
    scope, summary = report.scope, report.summary
    coverage, metadata = report.coverage, report.metadata

    lines: List[str] = [
        "# Compliance Audit Report",
        "",
        "| | |",
        "|---|---|",
        f"| **Ruleset** | {scope.ruleset} v{scope.ruleset_version} |",
        f"| **Files** | {scope.total_files} across {len(scope.components)} components |",
    ]
    if scope.diff is not None:
        lines.append(
            f"| **Scope** | Incremental (diff: {scope.diff.ref}, "
            f"{scope.diff.changed_files} changed files) |"
        )
    lines.extend(
        [
            f"| **Date** | {metadata.started_at} |",
            f"| **Duration** | {_duration(metadata.total_duration_ms)} |",
            "",
            "## Summary",
            "",
            "| Severity | Count |",
            "|----------|-------|",
        ]
    )

    for label, count in (
        ("Critical", summary.critical),
        ("High", summary.high),
        ("Medium", summary.medium),
        ("Low", summary.low),
        ("Informational", summary.informational),
    ):
        if count > 0:
            lines.append(f"| {label} | {count} |")
    lines.extend([f"| **Total** | **{summary.total}** |", "", "## Findings", ""])

    if report.findings:
        for corroborated in report.findings:
            lines.extend([_finding_markdown(corroborated), "", "---", ""])
    else:
        lines.extend(["No compliance violations found.", ""])

    lines.extend(
        [
            "## Coverage",
            "",
            f"- **Components:** {_pct(coverage.component_coverage)}",
            f"- **Rules:** {_pct(coverage.rule_coverage)}",
            "",
        ]
    )

    gaps = [entry for entry in coverage.entries if not entry.checked]
    if gaps:
        lines.extend(
            [
                "### Gaps",
                "",
                "| Component | Rule | Reason |",
                "|-----------|------|--------|",
            ]
        )
        for entry in gaps:
            lines.append(
                f"| {entry.component} | {entry.rule_id} | {entry.reason or 'unknown'} |"
            )
        lines.append("")

    lines.extend(
        [
            "## Metadata",
            "",
            f"- **Tasks executed:** {metadata.tasks_executed} "
            f"({metadata.tasks_failed} failed, {metadata.tasks_skipped} skipped)",
            f"- **Tokens used:** {metadata.total_tokens_used:,}",
            f"- **Models:** {', '.join(metadata.models)}",
        ]
    )
    if metadata.suppressed_count:
        lines.append(f"- **Suppressed:** {metadata.suppressed_count} findings")
    lines.append("")

    return "\n".join(lines)


def generate_compliance_json(report: ComplianceReport) -> str:
    return report.model_dump_json(indent=2)


# ----------------------------------------------------------------------
# Drift report
# ----------------------------------------------------------------------


def _drift_line(corroborated: CorroboratedFinding) -> str:
    finding = corroborated.finding
    return (
        f"**[{finding.severity.value.upper()}]** `{finding.rule_id}`: "
        f"{finding.title} ({_first_location(corroborated)})"
    )


def generate_drift_markdown(drift: DriftReport) -> str:
    lines: List[str] = [
        "# Compliance Drift Report",
        "",
        "| | Baseline | Current |",
        "|---|---|---|",
        f"| **Date** | {drift.baseline.started_at} | {drift.current.started_at} |",
        f"| **Ruleset** | {drift.baseline.ruleset} | {drift.current.ruleset} |",
        f"| **Findings** | {drift.baseline.total_findings} | {drift.current.total_findings} |",
        "",
        f"**Trend:** {drift.summary.trend.value}",
        "",
    ]

    if drift.new:
        lines.extend(["## New Findings", ""])
        lines.extend(f"- {_drift_line(change.finding)}" for change in drift.new)
        lines.append("")

    if drift.resolved:
        lines.extend(["## Resolved Findings", ""])
        lines.extend(f"- ~~{_drift_line(change.finding)}~~" for change in drift.resolved)
        lines.append("")

    if drift.changed:
        lines.extend(["## Changed Findings", ""])
        for change in drift.changed:
            lines.append(f"- {_drift_line(change.finding)}")
            lines.extend(
                f"  - {field.field}: {field.old} -> {field.new}"
                for field in change.changes
            )
        lines.append("")

    lines.extend(
        [
            "## Summary",
            "",
            "| Metric | Count |",
            "|---|---|",
            f"| New | {drift.summary.new_count} |",
            f"| Resolved | {drift.summary.resolved_count} |",
            f"| Changed | {drift.summary.changed_count} |",
        ]
    )

    return "\n".join(lines)


def generate_drift_json(drift: DriftReport) -> str:
    return drift.model_dump_json(indent=2)
