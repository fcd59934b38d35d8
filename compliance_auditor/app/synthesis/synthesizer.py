"""
Report assembly (wave 3).

Runs in-process after waves 1 and 2 have drained:

1. Deduplicate and corroborate findings across all task results
2. Apply suppressions (only when a target path is known)
3. Summarize severities over the active findings
4. Compute per-(task, rule) coverage
5. Assemble the immutable ComplianceReport

IMPORTANT:
- Pure apart from reading the suppression config
- No backend calls
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import AbstractSet, List, Optional, Sequence

from compliance_auditor.app.schemas.compliance_report import (
    ComplianceReport,
    DiffScope,
    ReportMetadata,
    ReportScope,
)
from compliance_auditor.app.schemas.findings import (
    AuditTaskResult,
    CorroboratedFinding,
)
from compliance_auditor.app.schemas.plan import AuditPlan
from compliance_auditor.app.schemas.ruleset import Ruleset
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.synthesis.coverage import compute_coverage
from compliance_auditor.app.synthesis.dedup import (
    deduplicate_findings,
    summarize_findings,
)
from compliance_auditor.app.synthesis.suppressions import (
    apply_suppressions,
    parse_inline_suppressions,
    parse_suppress_config,
)


logger = logging.getLogger(__name__)


def isoformat_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def synthesize_report(
    *,
    plan: AuditPlan,
    ruleset: Ruleset,
    files: Sequence[SourceFile],
    results: Sequence[AuditTaskResult],
    failed_task_ids: AbstractSet[str],
    skipped_task_ids: AbstractSet[str],
    started_at: datetime,
    target_path: Optional[str] = None,
    diff: Optional[DiffScope] = None,
    token_budget: Optional[int] = None,
) -> ComplianceReport:
    corroborated = deduplicate_findings(results)

    active: List[CorroboratedFinding] = corroborated
    suppressed: List[CorroboratedFinding] = []

    if target_path is not None:
        active, suppressed = apply_suppressions(
            corroborated,
            parse_suppress_config(target_path),
            parse_inline_suppressions(files),
        )
        if suppressed:
            logger.info("Suppressed %s finding(s)", len(suppressed))

    completed_at = datetime.now(timezone.utc)
    duration_ms = int((completed_at - started_at).total_seconds() * 1000)

    return ComplianceReport(
        scope=ReportScope(
            ruleset=ruleset.meta.framework,
            ruleset_version=ruleset.meta.ruleset_version,
            components=[component.name for component in plan.components],
            total_files=plan.stats.total_files,
            diff=diff,
        ),
        findings=active,
        suppressed=suppressed,
        summary=summarize_findings(active),
        coverage=compute_coverage(
            plan, results, failed_task_ids, skipped_task_ids
        ),
        metadata=ReportMetadata(
            started_at=isoformat_utc(started_at),
            completed_at=isoformat_utc(completed_at),
            total_duration_ms=max(duration_ms, 0),
            tasks_executed=len(results),
            tasks_failed=len(failed_task_ids),
            tasks_skipped=len(skipped_task_ids),
            total_tokens_used=sum(result.tokens_used for result in results),
            models=list(dict.fromkeys(result.model for result in results)),
            suppressed_count=len(suppressed),
            token_budget=token_budget,
        ),
    )
