"""
Finding suppression.

Two sources, checked in order:

1. Config rules from `.audit-suppress.yaml` at the target root:

       suppressions:
         - rule: BAC-01
           glob: "tests/**"
           reason: Test fixtures are not served

2. Inline comments in source files:

       # audit-suppress BAC-01 "Public health endpoint"

   An inline comment applies to its own line and the line after it.

IMPORTANT:
- A missing config file is not an error
- Suppressed findings are partitioned out, never discarded
"""

from __future__ import annotations

import logging
import os
import re
from typing import List, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict

from compliance_auditor.app.schemas.findings import CorroboratedFinding
from compliance_auditor.app.schemas.source import SourceFile


logger = logging.getLogger(__name__)

SUPPRESS_CONFIG_FILENAME = ".audit-suppress.yaml"
DEFAULT_CONFIG_REASON = "Suppressed by config"

_INLINE_RE = re.compile(
    r'(?://|#|--|/\*|<!--)\s*audit-suppress\s+([\w-]+)(?:\s+"([^"]*)")?'
)


class SuppressionRule(BaseModel):
    rule: str
    file: Optional[str] = None
    glob: Optional[str] = None
    reason: str = DEFAULT_CONFIG_REASON

    model_config = ConfigDict(frozen=True, extra="forbid")


class InlineSuppression(BaseModel):
    file: str
    line: int
    rule_id: str
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Glob matching
# ----------------------------------------------------------------------


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Translate a path glob: `**` spans directories, `*` and `?` do not.
    """
    parts: List[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def glob_match(file_path: str, pattern: str) -> bool:
    return glob_to_regex(pattern).match(file_path) is not None


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


def parse_inline_suppressions(
    files: Sequence[SourceFile],
) -> List[InlineSuppression]:
    suppressions: List[InlineSuppression] = []

    for source in files:
        lines = source.content.split("\n")
        for index, text in enumerate(lines):
            match = _INLINE_RE.search(text)
            if match is None:
                continue

            rule_id = match.group(1)
            reason = match.group(2) or None
            line_number = index + 1

            suppressions.append(
                InlineSuppression(
                    file=source.relative_path,
                    line=line_number,
                    rule_id=rule_id,
                    reason=reason,
                )
            )

            if index + 1 < len(lines):
                suppressions.append(
                    InlineSuppression(
                        file=source.relative_path,
                        line=line_number + 1,
                        rule_id=rule_id,
                        reason=reason,
                    )
                )

    return suppressions


def load_suppression_rules(raw: str) -> List[SuppressionRule]:
    parsed = yaml.safe_load(raw)

    if not isinstance(parsed, dict):
        return []

    entries = parsed.get("suppressions")
    if not isinstance(entries, list):
        return []

    rules: List[SuppressionRule] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue

        rule = entry.get("rule")
        if rule is None or isinstance(rule, (dict, list)) or not str(rule).strip():
            continue

        file = entry.get("file")
        glob = entry.get("glob")
        reason = entry.get("reason")

        rules.append(
            SuppressionRule(
                rule=str(rule).strip(),
                file=file if isinstance(file, str) else None,
                glob=glob if isinstance(glob, str) else None,
                reason=reason if isinstance(reason, str) else DEFAULT_CONFIG_REASON,
            )
        )

    return rules


def parse_suppress_config(target_path: str) -> List[SuppressionRule]:
    """
    Read suppression rules from the target root.

    Returns an empty list when the file is absent, unreadable, not UTF-8
    or not valid YAML.
    """
    config_path = os.path.join(
        os.path.abspath(target_path), SUPPRESS_CONFIG_FILENAME
    )
    if not os.path.isfile(config_path):
        return []

    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            raw = handle.read()
        return load_suppression_rules(raw)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning(
            "Ignoring malformed suppression config %s: %s", config_path, exc
        )
        return []


# ----------------------------------------------------------------------
# Matching
# ----------------------------------------------------------------------


def finding_suppressed_by(
    corroborated: CorroboratedFinding,
    config_rules: Sequence[SuppressionRule],
    inline: Sequence[InlineSuppression],
) -> Optional[str]:
    """
    Return the suppression reason for a finding, or None.
    """
    finding = corroborated.finding

    for rule in config_rules:
        if rule.rule != finding.rule_id:
            continue
        if rule.file and not any(
            loc.file == rule.file for loc in finding.locations
        ):
            continue
        if rule.glob and not any(
            glob_match(loc.file, rule.glob) for loc in finding.locations
        ):
            continue
        return rule.reason

    for entry in inline:
        if entry.rule_id != finding.rule_id:
            continue
        if any(
            loc.file == entry.file and loc.start_line == entry.line
            for loc in finding.locations
        ):
            return entry.reason or f"Inline suppression in {entry.file}:{entry.line}"

    return None


def apply_suppressions(
    findings: Sequence[CorroboratedFinding],
    config_rules: Sequence[SuppressionRule],
    inline: Sequence[InlineSuppression],
) -> Tuple[List[CorroboratedFinding], List[CorroboratedFinding]]:
    """
    Partition findings into (active, suppressed).

    Suppressed findings are marked with `suppressed=True` and the
    matching reason.
    """
    active: List[CorroboratedFinding] = []
    suppressed: List[CorroboratedFinding] = []

    for corroborated in findings:
        reason = finding_suppressed_by(corroborated, config_rules, inline)
        if reason is None:
            active.append(corroborated)
            continue

        suppressed.append(
            corroborated.model_copy(
                update={"suppressed": True, "suppression_reason": reason}
            )
        )

    return active, suppressed
