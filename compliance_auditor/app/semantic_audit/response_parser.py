"""
Backend response parsing.

Accepts either a structured value (constrained decoding honored) or free
text. From free text, one leading and one trailing code fence are
stripped and the first brace-delimited object is decoded.

IMPORTANT:
- Every field is normalized, never trusted
- A finding is never dropped for lacking a location
- An unparseable reply yields a single PARSE-ERROR finding; it never raises
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from compliance_auditor.app.schemas.findings import (
    AuditFinding,
    AuditSeverity,
    AuditTaskResult,
    FindingLocation,
)
from compliance_auditor.app.schemas.plan import AuditTask


logger = logging.getLogger(__name__)

PARSE_ERROR_RULE_ID = "PARSE-ERROR"
UNKNOWN_RULE_ID = "UNKNOWN"
DEFAULT_CONFIDENCE = 0.5
MAX_TITLE_LENGTH = 80

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?\n?", re.MULTILINE)
_TRAILING_FENCE_RE = re.compile(r"\n?```$", re.MULTILINE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

SEVERITY_SYNONYMS: Dict[str, AuditSeverity] = {
    "info": AuditSeverity.INFORMATIONAL,
    "warning": AuditSeverity.MEDIUM,
    "moderate": AuditSeverity.MEDIUM,
}


class ResponseParseError(ValueError):
    """No JSON object could be recovered from a backend reply."""


# ----------------------------------------------------------------------
# Field normalization
# ----------------------------------------------------------------------


def normalize_severity(raw: Any) -> AuditSeverity:
    lowered = str(raw).strip().lower()
    try:
        return AuditSeverity(lowered)
    except ValueError:
        return SEVERITY_SYNONYMS.get(lowered, AuditSeverity.MEDIUM)


def normalize_confidence(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE

    if math.isnan(value):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, value))


def _positive_int(raw: Any) -> Optional[int]:
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return None
    return value if value >= 1 else None


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def normalize_locations(raw: Any, task_files: Sequence[str]) -> List[FindingLocation]:
    fallback_file = task_files[0] if task_files else None

    if not raw:
        if fallback_file is None:
            return []
        return [FindingLocation(file=fallback_file, start_line=1)]

    entries = raw if isinstance(raw, list) else [raw]
    locations: List[FindingLocation] = []

    for entry in entries:
        if not isinstance(entry, Mapping):
            locations.append(
                FindingLocation(file=fallback_file or "unknown", start_line=1)
            )
            continue

        start_line = _positive_int(_first(entry, "startLine", "start_line", "line")) or 1
        end_line = _positive_int(_first(entry, "endLine", "end_line"))
        if end_line is not None and end_line < start_line:
            end_line = None

        locations.append(
            FindingLocation(
                file=str(_first(entry, "file", "path") or fallback_file or "unknown"),
                start_line=start_line,
                end_line=end_line,
            )
        )

    return locations


def _normalize_finding(raw: Mapping[str, Any], task: AuditTask) -> AuditFinding:
    return AuditFinding(
        rule_id=str(_first(raw, "ruleId", "rule_id") or UNKNOWN_RULE_ID),
        severity=normalize_severity(raw.get("severity") or "medium"),
        title=str(raw.get("title") or "Untitled finding")[:MAX_TITLE_LENGTH],
        description=str(raw.get("description") or ""),
        locations=normalize_locations(
            _first(raw, "locations", "location"), task.files
        ),
        evidence=str(raw.get("evidence") or ""),
        remediation=str(_first(raw, "remediation", "suggestion", "fix") or ""),
        confidence=normalize_confidence(raw.get("confidence")),
    )


# ----------------------------------------------------------------------
# Extraction
# ----------------------------------------------------------------------


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """
    Recover the first brace-delimited JSON object from free text.
    """
    if not text:
        raise ResponseParseError("Empty response")

    cleaned = _LEADING_FENCE_RE.sub("", text, count=1)
    cleaned = _TRAILING_FENCE_RE.sub("", cleaned, count=1)

    match = _OBJECT_RE.search(cleaned)
    if match is None:
        raise ResponseParseError("No JSON object found in response")

    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ResponseParseError("Response JSON is not an object")
    return parsed


def _structured_payload(structured: Any) -> Optional[Dict[str, Any]]:
    if isinstance(structured, BaseModel):
        return structured.model_dump(mode="json", by_alias=True)
    if isinstance(structured, dict):
        return structured
    return None


def parse_error_finding() -> AuditFinding:
    return AuditFinding(
        rule_id=PARSE_ERROR_RULE_ID,
        severity=AuditSeverity.INFORMATIONAL,
        title="Failed to parse audit agent response",
        description="Response was not valid JSON. Rerun this task for results.",
        locations=[],
        evidence="",
        remediation="Rerun this audit task",
        confidence=0.0,
    )


def parse_audit_response(
    text: Optional[str],
    task: AuditTask,
    *,
    model: str,
    tokens_used: int,
    duration_ms: int,
    structured: Any = None,
) -> AuditTaskResult:
    """
    Turn one backend reply into a task result.
    """
    try:
        payload = _structured_payload(structured)
        if payload is None:
            payload = extract_json_object(text)

        raw_findings = payload.get("findings")
        if not isinstance(raw_findings, list):
            raw_findings = []

        findings = [
            _normalize_finding(raw, task)
            for raw in raw_findings
            if isinstance(raw, Mapping)
        ]

    except (ValueError, TypeError) as exc:
        logger.warning("Audit response parse error for task %s: %s", task.id, exc)
        findings = [parse_error_finding()]

    return AuditTaskResult(
        task_id=task.id,
        type=task.type,
        component=task.component,
        rules_checked=list(task.rules),
        findings=findings,
        duration_ms=duration_ms,
        model=model,
        tokens_used=tokens_used,
    )
