"""
Standardized finding schema.

Defines the structures used to report compliance issues produced by
audit tasks and reconciled during synthesis.

This schema is:
- severity-graded
- confidence-scored
- location-anchored
- task-traceable (via AuditTaskResult / CorroboratedFinding)
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.plan import AuditTaskType


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class AuditSeverity(str, Enum):
    """
    Normalized severity of a finding.

    Ordering is intentional and MUST remain stable.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFORMATIONAL = "informational"


SEVERITY_RANK: Dict[AuditSeverity, int] = {
    AuditSeverity.CRITICAL: 0,
    AuditSeverity.HIGH: 1,
    AuditSeverity.MEDIUM: 2,
    AuditSeverity.LOW: 3,
    AuditSeverity.INFORMATIONAL: 4,
}


def severity_rank(severity: AuditSeverity) -> int:
    return SEVERITY_RANK[severity]


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


class FindingLocation(BaseModel):
    file: str
    start_line: int = Field(..., ge=1)
    end_line: Optional[int] = Field(None, ge=1)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def last_line(self) -> int:
        return self.end_line if self.end_line is not None else self.start_line


class AuditFinding(BaseModel):
    """
    Atomic output of one audit task.

    Owned by its task result until synthesis merges it with findings
    from other tasks.
    """

    rule_id: str
    severity: AuditSeverity
    title: str = Field(..., max_length=80)
    description: str = ""
    locations: List[FindingLocation] = Field(default_factory=list)
    evidence: str = ""
    remediation: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class AuditTaskResult(BaseModel):
    """
    Result of one completed task (wave 1 or wave 2).

    Results are accumulated in completion order. Nothing downstream
    depends on that order: every result carries its task id.
    """

    task_id: str
    type: AuditTaskType
    component: Optional[str] = None
    rules_checked: List[str] = Field(default_factory=list)
    findings: List[AuditFinding] = Field(default_factory=list)
    duration_ms: int = Field(0, ge=0)
    model: str
    tokens_used: int = Field(0, ge=0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class CorroboratedFinding(BaseModel):
    """
    A deduplicated finding produced during synthesis.

    IMPORTANT:
    - `finding` is the canonical (most severe, then most confident) member
    - `corroborations` counts distinct source tasks, never raw duplicates
    """

    finding: AuditFinding
    corroborations: int = Field(..., ge=1)
    source_task_ids: List[str] = Field(default_factory=list)
    effective_confidence: float = Field(..., ge=0.0, le=1.0)
    suppressed: bool = False
    suppression_reason: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
