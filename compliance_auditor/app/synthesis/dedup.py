"""
Cross-task deduplication and corroboration.

Two findings describe the same issue when they share a rule id and at
least one pair of their locations is in the same file with overlapping
(inclusive) line ranges.

IMPORTANT:
- Grouping is greedy: a finding joins the FIRST group holding any
  overlapping member; overlap is not re-verified across the whole group
- Corroborations count distinct source tasks
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from compliance_auditor.app.schemas.compliance_report import SeveritySummary
from compliance_auditor.app.schemas.findings import (
    AuditFinding,
    AuditTaskResult,
    CorroboratedFinding,
    severity_rank,
)


CORROBORATION_BONUS = 0.1


def findings_overlap(a: AuditFinding, b: AuditFinding) -> bool:
    if a.rule_id != b.rule_id:
        return False

    return any(
        loc_a.file == loc_b.file
        and loc_a.start_line <= loc_b.last_line
        and loc_b.start_line <= loc_a.last_line
        for loc_a in a.locations
        for loc_b in b.locations
    )


def effective_confidence(confidence: float, corroborations: int) -> float:
    return min(1.0, confidence + CORROBORATION_BONUS * (corroborations - 1))


class _Group:
    __slots__ = ("findings", "task_ids")

    def __init__(self, finding: AuditFinding, task_id: str) -> None:
        self.findings: List[AuditFinding] = [finding]
        self.task_ids: List[str] = [task_id]


def _canonical(findings: Sequence[AuditFinding]) -> AuditFinding:
    return min(
        findings,
        key=lambda f: (severity_rank(f.severity), -f.confidence),
    )


def deduplicate_findings(
    results: Sequence[AuditTaskResult],
) -> List[CorroboratedFinding]:
    """
    Collapse overlapping findings across all task results.

    Output is sorted by severity, then effective confidence descending.
    """
    groups: List[_Group] = []

    for result in results:
        for finding in result.findings:
            match = next(
                (
                    group for group in groups
                    if any(findings_overlap(existing, finding) for existing in group.findings)
                ),
                None,
            )

            if match is None:
                groups.append(_Group(finding, result.task_id))
                continue

            match.findings.append(finding)
            if result.task_id not in match.task_ids:
                match.task_ids.append(result.task_id)

    corroborated: List[CorroboratedFinding] = []
    for group in groups:
        canonical = _canonical(group.findings)
        corroborations = len(group.task_ids)
        corroborated.append(
            CorroboratedFinding(
                finding=canonical,
                corroborations=corroborations,
                source_task_ids=list(group.task_ids),
                effective_confidence=effective_confidence(
                    canonical.confidence, corroborations
                ),
            )
        )

    corroborated.sort(
        key=lambda c: (severity_rank(c.finding.severity), -c.effective_confidence)
    )
    return corroborated


def summarize_findings(findings: Sequence[CorroboratedFinding]) -> SeveritySummary:
    counts: Dict[str, int] = {
        "critical": 0,
        "high": 0,
        "medium": 0,
        "low": 0,
        "informational": 0,
    }
    for corroborated in findings:
        counts[corroborated.finding.severity.value] += 1

    return SeveritySummary(**counts, total=len(findings))
