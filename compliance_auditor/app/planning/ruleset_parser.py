"""
Ruleset parser.

Turns a Markdown rule catalog with a `---`-delimited front-matter block
into structured Rule / CrossCuttingPattern records.

Document layout:

    ---
    framework: OWASP Top 10
    ruleset_version: 1.2.0
    languages: [typescript, python]
    ---

    ## Broken Access Control

    ### BAC-01: Missing authorization check
    **Severity:** Critical
    **Applies to:** API routes, HTTP handlers
    **What to look for:**
    - handlers without an authorization guard
    **Guidance:** Multi-line guidance
    may continue here.

    ## Cross-Cutting Patterns

    ### CROSS-01: Consistent authorization
    **Relates to:** BAC-01
    **What to verify:**
    - every route applies the same guard

IMPORTANT:
- Missing front-matter is fatal (RulesetParseError)
- Values are transcribed verbatim; severity/tag normalization is downstream
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple, Union

from compliance_auditor.app.schemas.ruleset import (
    CrossCuttingPattern,
    Rule,
    Ruleset,
    RulesetMeta,
)


class RulesetParseError(ValueError):
    """Raised when a ruleset document cannot be parsed at all."""


_FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n(.*)\Z", re.DOTALL)
_META_LINE_RE = re.compile(r"^(\w[\w_-]*)\s*:\s*(.+)$")
_CATEGORY_RE = re.compile(r"^## (.+)$", re.MULTILINE)
_RULE_HEADING_RE = re.compile(r"^###\s+([\w-]+):\s*(.+)$", re.MULTILINE)
_PATTERN_HEADING_RE = re.compile(r"^###\s+(CROSS-\d+):\s*(.+)$", re.MULTILINE)
_SECTION_SPLIT_RE = re.compile(r"\n(?=## )")
_BLOCK_SPLIT_RE = re.compile(r"\n(?=### )")
_BULLET_RE = re.compile(r"^\s*-\s+")


# ----------------------------------------------------------------------
# Front-matter
# ----------------------------------------------------------------------


def _parse_scalar(raw: str) -> Union[str, List[str]]:
    value = raw.strip()

    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]

    if value.startswith("[") and value.endswith("]"):
        return [item.strip() for item in value[1:-1].split(",")]

    return value


def _parse_frontmatter(content: str) -> Tuple[RulesetMeta, str]:
    match = _FRONTMATTER_RE.match(content)
    if match is None:
        raise RulesetParseError(
            "Ruleset must have YAML frontmatter (--- delimited)"
        )

    raw_meta, body = match.group(1), match.group(2)

    values: Dict[str, Union[str, List[str]]] = {}
    for line in raw_meta.split("\n"):
        kv = _META_LINE_RE.match(line)
        if kv is None:
            continue
        values[kv.group(1)] = _parse_scalar(kv.group(2))

    def text(*keys: str, default: str) -> str:
        for key in keys:
            value = values.get(key)
            if isinstance(value, str) and value:
                return value
        return default

    languages = values.get("languages")

    meta = RulesetMeta(
        framework=text("framework", default="unknown"),
        version=text("version", default="0"),
        ruleset_version=text(
            "ruleset_version", "rulesetVersion", default="0.1.0"
        ),
        scope=text("scope", default=""),
        languages=languages if isinstance(languages, list) else [],
    )

    return meta, body


# ----------------------------------------------------------------------
# Field extraction
# ----------------------------------------------------------------------


def extract_field(block: str, field_name: str) -> Optional[str]:
    """
    Extract the value of a `**Field:**` marker.

    The value runs until the next bold field marker, the next
    sub-heading, or the end of the block.
    """
    pattern = re.compile(
        r"\*\*" + re.escape(field_name) + r":\*\*\s*(.*?)(?=\n\*\*\w|\n###|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(block)
    if match is None:
        return None
    return match.group(1).strip()


def extract_list(block: str, field_name: str) -> List[str]:
    content = extract_field(block, field_name)
    if not content:
        return []

    return [
        _BULLET_RE.sub("", line).strip()
        for line in content.split("\n")
        if _BULLET_RE.match(line)
    ]


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ----------------------------------------------------------------------
# Blocks
# ----------------------------------------------------------------------


def _parse_rule(block: str, category: str) -> Optional[Rule]:
    heading = _RULE_HEADING_RE.search(block)
    if heading is None:
        return None

    return Rule(
        id=heading.group(1),
        title=heading.group(2).strip(),
        category=category,
        severity=extract_field(block, "Severity") or "Medium",
        applies_to=_split_csv(extract_field(block, "Applies to")),
        compliant=extract_field(block, "Compliant") or "",
        violation=extract_field(block, "Violation") or "",
        what_to_look_for=extract_list(block, "What to look for"),
        guidance=extract_field(block, "Guidance") or "",
    )


def _parse_cross_cutting(block: str) -> Optional[CrossCuttingPattern]:
    heading = _PATTERN_HEADING_RE.search(block)
    if heading is None:
        return None

    return CrossCuttingPattern(
        id=heading.group(1),
        title=heading.group(2).strip(),
        scope=extract_field(block, "Scope") or "Full codebase",
        relates_to=_split_csv(extract_field(block, "Relates to")),
        objective=extract_field(block, "Objective") or "",
        checks=extract_list(block, "What to verify"),
    )


def parse_ruleset(content: str) -> Ruleset:
    """
    Parse a complete ruleset document.

    Raises RulesetParseError when the front-matter block is missing.
    """
    content = content.replace("\r\n", "\n")
    meta, body = _parse_frontmatter(content)

    rules: List[Rule] = []
    cross_cutting: List[CrossCuttingPattern] = []

    for section in _SECTION_SPLIT_RE.split(body):
        category_match = _CATEGORY_RE.search(section)
        if category_match is None:
            continue

        category = category_match.group(1).strip()
        blocks = _BLOCK_SPLIT_RE.split(section)

        if "cross-cutting" in category.lower():
            for block in blocks:
                pattern = _parse_cross_cutting(block)
                if pattern is not None:
                    cross_cutting.append(pattern)
            continue

        for block in blocks:
            rule = _parse_rule(block, category)
            if rule is not None:
                rules.append(rule)

    return Ruleset(meta=meta, rules=rules, cross_cutting=cross_cutting)
