"""
Coverage accounting.

A (wave-1 task, rule) pair is checked only when its task completed.
Every unchecked pair carries exactly one reason.
"""

from __future__ import annotations

from typing import AbstractSet, List, Sequence

from compliance_auditor.app.schemas.compliance_report import (
    COVERAGE_REASON_AGENT_FAILED,
    COVERAGE_REASON_BUDGET_EXCEEDED,
    COVERAGE_REASON_NOT_EXECUTED,
    CoverageEntry,
    CoverageReport,
)
from compliance_auditor.app.schemas.findings import AuditTaskResult
from compliance_auditor.app.schemas.plan import AuditPlan


def compute_coverage_entries(
    plan: AuditPlan,
    results: Sequence[AuditTaskResult],
    failed_task_ids: AbstractSet[str],
    skipped_task_ids: AbstractSet[str],
) -> List[CoverageEntry]:
    completed = {result.task_id for result in results}
    entries: List[CoverageEntry] = []

    for task in plan.waves.wave1:
        if task.component is None:
            continue

        if task.id in failed_task_ids:
            checked, reason = False, COVERAGE_REASON_AGENT_FAILED
        elif task.id in completed:
            checked, reason = True, None
        elif task.id in skipped_task_ids:
            checked, reason = False, COVERAGE_REASON_BUDGET_EXCEEDED
        else:
            checked, reason = False, COVERAGE_REASON_NOT_EXECUTED

        for rule_id in task.rules:
            entries.append(
                CoverageEntry(
                    component=task.component,
                    rule_id=rule_id,
                    checked=checked,
                    reason=reason,
                )
            )

    return entries


def compute_coverage(
    plan: AuditPlan,
    results: Sequence[AuditTaskResult],
    failed_task_ids: AbstractSet[str],
    skipped_task_ids: AbstractSet[str],
) -> CoverageReport:
    entries = compute_coverage_entries(
        plan, results, failed_task_ids, skipped_task_ids
    )

    checked = [entry for entry in entries if entry.checked]
    total_components = len(plan.components)
    total_rules = plan.stats.total_rules

    checked_components = len({entry.component for entry in checked})
    checked_rules = len({entry.rule_id for entry in checked})

    return CoverageReport(
        entries=entries,
        component_coverage=(
            checked_components / total_components if total_components else 0.0
        ),
        rule_coverage=checked_rules / total_rules if total_rules else 0.0,
    )
