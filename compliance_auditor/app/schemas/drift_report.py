"""
Drift report schema.

A drift report is derived from two compliance reports and is never
persisted by this service.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.findings import CorroboratedFinding


class DriftChangeType(str, Enum):
    NEW = "new"
    RESOLVED = "resolved"
    CHANGED = "changed"


class DriftTrend(str, Enum):
    IMPROVING = "improving"
    REGRESSING = "regressing"
    STABLE = "stable"


class FieldChange(BaseModel):
    field: str
    old: str
    new: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class FindingChange(BaseModel):
    type: DriftChangeType
    finding: CorroboratedFinding
    previous: Optional[CorroboratedFinding] = None
    changes: List[FieldChange] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportSnapshot(BaseModel):
    started_at: str
    ruleset: str
    total_findings: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class DriftSummary(BaseModel):
    new_count: int = 0
    resolved_count: int = 0
    changed_count: int = 0
    trend: DriftTrend = DriftTrend.STABLE

    model_config = ConfigDict(frozen=True, extra="forbid")


class DriftReport(BaseModel):
    baseline: ReportSnapshot
    current: ReportSnapshot
    new: List[FindingChange] = Field(default_factory=list)
    resolved: List[FindingChange] = Field(default_factory=list)
    changed: List[FindingChange] = Field(default_factory=list)
    summary: DriftSummary

    model_config = ConfigDict(frozen=True, extra="forbid")
