"""
Audit plan schema.

The plan is an immutable artifact produced once per run. Execution state
(skipped, running, completed, failed) is tracked by the executor and is
never written back onto tasks.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.ruleset import RulesetMeta


class AuditTaskType(str, Enum):
    COMPONENT_SCAN = "component-scan"
    CROSS_CUTTING = "cross-cutting"
    SYNTHESIS = "synthesis"


class AuditComponent(BaseModel):
    """
    A grouping of files audited together.

    Heuristic components are derived from directory structure; manifest
    components come from an external component map and carry tags.
    """

    name: str
    path: str
    files: List[str] = Field(
        default_factory=list,
        description="Relative paths of the files in this component",
    )
    languages: List[str] = Field(default_factory=list)
    estimated_tokens: int = Field(0, ge=0)
    tags: List[str] = Field(
        default_factory=list,
        description="Manifest tags (empty in heuristic mode)",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class AuditTask(BaseModel):
    id: str
    wave: Literal[1, 2, 3]
    type: AuditTaskType
    component: Optional[str] = None
    rules: List[str] = Field(default_factory=list)
    files: List[str] = Field(
        default_factory=list,
        description="Relative paths of the files sent to the backend",
    )
    estimated_tokens: int = Field(0, ge=0)
    priority: int = Field(
        ...,
        ge=0,
        description="Lower runs earlier (Critical=0 ... Informational=4)",
    )
    description: str

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class AuditWaves(BaseModel):
    wave1: List[AuditTask] = Field(default_factory=list)
    wave2: List[AuditTask] = Field(default_factory=list)
    wave3: List[AuditTask] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def for_wave(self, wave: int) -> List[AuditTask]:
        return {1: self.wave1, 2: self.wave2, 3: self.wave3}[wave]


class AuditPlanStats(BaseModel):
    total_tasks: int = Field(..., ge=0)
    total_rules: int = Field(
        ...,
        ge=0,
        description="Rules plus cross-cutting patterns in the ruleset",
    )
    total_files: int = Field(..., ge=0)
    estimated_tokens: int = Field(
        ...,
        ge=0,
        description="Token estimate for waves 1 and 2 only",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class AuditPlan(BaseModel):
    ruleset: RulesetMeta
    components: List[AuditComponent] = Field(default_factory=list)
    waves: AuditWaves
    stats: AuditPlanStats

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
