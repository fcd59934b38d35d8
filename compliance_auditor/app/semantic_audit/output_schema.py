"""
Backend output schema.

Describes the JSON object the model is asked to return. It is sent to
backends that support constrained decoding and described in prose for
those that do not.

IMPORTANT:
- Wire keys are camelCase (ruleId, startLine, endLine)
- Replies are NEVER trusted to match this schema; see response_parser
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.findings import AuditSeverity


class ReportedLocation(BaseModel):
    file: str = Field(..., description="Path relative to the audit target")
    start_line: int = Field(..., alias="startLine")
    end_line: Optional[int] = Field(None, alias="endLine")

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
    )


class ReportedFinding(BaseModel):
    rule_id: str = Field(
        ...,
        alias="ruleId",
        description="Rule id from the system prompt, e.g. BAC-01",
    )
    severity: AuditSeverity
    title: str = Field(..., description="What is wrong, under 80 characters")
    description: str = Field(..., description="Why this is a compliance concern")
    locations: List[ReportedLocation]
    evidence: str = Field(..., description="The code pattern or behavior observed")
    remediation: str = Field(..., description="Concrete fix or approach")
    confidence: float = Field(
        ...,
        description="0.0-1.0 confidence that this is a real violation",
    )

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
    )


class AuditFindingsOutput(BaseModel):
    findings: List[ReportedFinding] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


AUDIT_FINDINGS_SCHEMA: Dict[str, Any] = AuditFindingsOutput.model_json_schema(
    by_alias=True
)

FINDING_SCHEMA_PROSE = """{
  "ruleId": "<rule ID from the rules above, e.g. BAC-01>",
  "severity": "critical" | "high" | "medium" | "low" | "informational",
  "title": "<what's wrong, <80 chars>",
  "description": "<why this is a compliance concern>",
  "locations": [
    { "file": "<relative path>", "startLine": <number>, "endLine": <number or omit> }
  ],
  "evidence": "<the specific code pattern or behavior observed>",
  "remediation": "<concrete fix or approach>",
  "confidence": <0.0-1.0, your confidence this is a real violation>
}"""
