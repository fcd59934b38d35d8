"""
Ruleset schema.

A ruleset is a declarative compliance catalog transcribed from a
Markdown document with YAML-style front-matter.

IMPORTANT:
- Parsed once per run and read-only thereafter
- Severity and tag strings are stored exactly as written
- Normalization happens downstream (planning, response parsing)
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RulesetMeta(BaseModel):
    """
    Catalog-level metadata recovered from the front-matter block.
    """

    framework: str = Field(
        "unknown",
        description="Compliance framework the catalog implements",
    )

    version: str = Field(
        "0",
        description="Version of the compliance framework",
    )

    ruleset_version: str = Field(
        "0.1.0",
        description="Version of this ruleset document",
    )

    scope: str = Field(
        "",
        description="Free-text description of what the ruleset covers",
    )

    languages: List[str] = Field(
        default_factory=list,
        description="Languages the ruleset is written for",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class Rule(BaseModel):
    """
    A single checkable compliance rule.
    """

    id: str
    title: str
    category: str
    severity: str = Field(
        "Medium",
        description="Severity as written (Critical|High|Medium|Low|Informational)",
    )
    applies_to: List[str] = Field(
        default_factory=list,
        description="Component/file tags this rule applies to",
    )
    compliant: str = ""
    violation: str = ""
    what_to_look_for: List[str] = Field(default_factory=list)
    guidance: str = ""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class CrossCuttingPattern(BaseModel):
    """
    A concern that spans files and components rather than being
    checkable per file.
    """

    id: str
    title: str
    scope: str = "Full codebase"
    relates_to: List[str] = Field(
        default_factory=list,
        description="Rule ids this pattern is related to",
    )
    objective: str = ""
    checks: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


class Ruleset(BaseModel):
    meta: RulesetMeta
    rules: List[Rule] = Field(default_factory=list)
    cross_cutting: List[CrossCuttingPattern] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def find_rule(self, rule_id: str) -> Rule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def find_pattern(self, pattern_id: str) -> CrossCuttingPattern | None:
        for pattern in self.cross_cutting:
            if pattern.id == pattern_id:
                return pattern
        return None
