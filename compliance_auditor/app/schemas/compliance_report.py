"""
Compliance report schema.

The report is the terminal, immutable artifact of one run and the stable
output contract of the service. It may later serve as the baseline of a
drift comparison.

IMPORTANT:
- The report reflects exactly what ran
- Every coverage gap carries an explicit reason
- "No findings" is never ambiguous with "never checked"
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.findings import CorroboratedFinding


COVERAGE_REASON_AGENT_FAILED = "agent failed"
COVERAGE_REASON_BUDGET_EXCEEDED = "budget exceeded"
COVERAGE_REASON_NOT_EXECUTED = "task not executed"


class DiffScope(BaseModel):
    ref: str
    changed_files: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportScope(BaseModel):
    ruleset: str = Field(..., description="Ruleset framework name")
    ruleset_version: str
    components: List[str] = Field(default_factory=list)
    total_files: int = Field(0, ge=0)
    diff: Optional[DiffScope] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class SeveritySummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    informational: int = 0
    total: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")


class CoverageEntry(BaseModel):
    """
    Coverage of one (wave-1 task, rule) pair.

    Entries are not deduplicated per (component, rule).
    """

    component: str
    rule_id: str
    checked: bool
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class CoverageReport(BaseModel):
    entries: List[CoverageEntry] = Field(default_factory=list)
    component_coverage: float = Field(0.0, ge=0.0, le=1.0)
    rule_coverage: float = Field(0.0, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportMetadata(BaseModel):
    started_at: str = Field(..., description="ISO-8601 UTC timestamp")
    completed_at: str = Field(..., description="ISO-8601 UTC timestamp")
    total_duration_ms: int = Field(0, ge=0)
    tasks_executed: int = Field(0, ge=0)
    tasks_failed: int = Field(0, ge=0)
    tasks_skipped: int = Field(0, ge=0)
    total_tokens_used: int = Field(0, ge=0)
    models: List[str] = Field(default_factory=list)
    suppressed_count: int = Field(0, ge=0)
    token_budget: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class ComplianceReport(BaseModel):
    scope: ReportScope
    findings: List[CorroboratedFinding] = Field(default_factory=list)
    suppressed: List[CorroboratedFinding] = Field(
        default_factory=list,
        description="Findings removed by suppression (kept for audit trail)",
    )
    summary: SeveritySummary
    coverage: CoverageReport
    metadata: ReportMetadata

    model_config = ConfigDict(frozen=True, extra="forbid")
