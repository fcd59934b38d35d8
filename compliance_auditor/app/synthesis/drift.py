"""
Drift comparison between two compliance reports.

Finding identity uses the same overlap test as deduplication. Matching
is greedy: each baseline finding is consumed at most once.
"""

from __future__ import annotations

from typing import List, Set

from compliance_auditor.app.schemas.compliance_report import ComplianceReport
from compliance_auditor.app.schemas.drift_report import (
    DriftChangeType,
    DriftReport,
    DriftSummary,
    DriftTrend,
    FieldChange,
    FindingChange,
    ReportSnapshot,
)
from compliance_auditor.app.schemas.findings import CorroboratedFinding
from compliance_auditor.app.synthesis.dedup import findings_overlap


def _field_changes(
    current: CorroboratedFinding,
    baseline: CorroboratedFinding,
) -> List[FieldChange]:
    changes: List[FieldChange] = []

    if current.finding.severity != baseline.finding.severity:
        changes.append(
            FieldChange(
                field="severity",
                old=baseline.finding.severity.value,
                new=current.finding.severity.value,
            )
        )

    if current.effective_confidence != baseline.effective_confidence:
        changes.append(
            FieldChange(
                field="effective_confidence",
                old=f"{baseline.effective_confidence:.2f}",
                new=f"{current.effective_confidence:.2f}",
            )
        )

    return changes


def _trend(new_count: int, resolved_count: int) -> DriftTrend:
    if resolved_count > new_count:
        return DriftTrend.IMPROVING
    if new_count > resolved_count:
        return DriftTrend.REGRESSING
    return DriftTrend.STABLE


def _snapshot(report: ComplianceReport) -> ReportSnapshot:
    return ReportSnapshot(
        started_at=report.metadata.started_at,
        ruleset=report.scope.ruleset,
        total_findings=len(report.findings),
    )


def diff_reports(
    baseline: ComplianceReport,
    current: ComplianceReport,
) -> DriftReport:
    matched: Set[int] = set()
    new: List[FindingChange] = []
    changed: List[FindingChange] = []

    for candidate in current.findings:
        match_index = next(
            (
                index
                for index, previous in enumerate(baseline.findings)
                if index not in matched
                and findings_overlap(candidate.finding, previous.finding)
            ),
            None,
        )

        if match_index is None:
            new.append(FindingChange(type=DriftChangeType.NEW, finding=candidate))
            continue

        matched.add(match_index)
        previous = baseline.findings[match_index]
        changes = _field_changes(candidate, previous)

        if changes:
            changed.append(
                FindingChange(
                    type=DriftChangeType.CHANGED,
                    finding=candidate,
                    previous=previous,
                    changes=changes,
                )
            )

    resolved = [
        FindingChange(
            type=DriftChangeType.RESOLVED,
            finding=previous,
            previous=previous,
        )
        for index, previous in enumerate(baseline.findings)
        if index not in matched
    ]

    return DriftReport(
        baseline=_snapshot(baseline),
        current=_snapshot(current),
        new=new,
        resolved=resolved,
        changed=changed,
        summary=DriftSummary(
            new_count=len(new),
            resolved_count=len(resolved),
            changed_count=len(changed),
            trend=_trend(len(new), len(resolved)),
        ),
    )
