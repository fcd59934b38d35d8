"""
Plan generator.

Partitions discovered files into components, matches rules to
components, and emits a three-wave audit plan:

- Wave 1: one component-scan task per (component, rule category)
- Wave 2: one cross-cutting task per cross-cutting pattern
- Wave 3: a single in-process synthesis task

IMPORTANT:
- Pure: no filesystem access, no backend calls
- Heuristic mode assigns every file to exactly one component
- Matching prefers over-scoping a task to silently skipping a rule
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Pattern, Sequence

from compliance_auditor.app.planning.manifest import (
    Manifest,
    load_manifest_components,
    match_rules_by_tags,
)
from compliance_auditor.app.schemas.plan import (
    AuditComponent,
    AuditPlan,
    AuditPlanStats,
    AuditTask,
    AuditTaskType,
    AuditWaves,
)
from compliance_auditor.app.schemas.ruleset import Rule, Ruleset
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.utils.tokens import estimate_tokens


SEVERITY_PRIORITY: Dict[str, int] = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
    "informational": 4,
}

DEFAULT_PRIORITY = 3

SYNTHESIS_DESCRIPTION = (
    "Aggregate findings, deduplicate, rank by severity, compute coverage"
)


def _patterns(*expressions: str) -> List[Pattern[str]]:
    return [re.compile(expr, re.IGNORECASE) for expr in expressions]


# ----------------------------------------------------------------------
# Tag -> path heuristics
# ----------------------------------------------------------------------

TAG_PATTERNS: Dict[str, List[Pattern[str]]] = {
    "api routes": _patterns(r"route", r"api/", r"handler", r"controller", r"endpoint"),
    "http handlers": _patterns(r"route", r"handler", r"middleware", r"server"),
    "graphql resolvers": _patterns(r"resolver", r"graphql", r"schema"),
    "rpc handlers": _patterns(r"rpc", r"grpc", r"proto"),
    "database": _patterns(
        r"db", r"database", r"model", r"schema", r"migration",
        r"query", r"repository", r"prisma",
    ),
    "database access": _patterns(
        r"db", r"database", r"model", r"repository", r"dao", r"query",
    ),
    "database queries": _patterns(r"query", r"db", r"repository", r"dao"),
    "query builders": _patterns(r"query", r"builder"),
    "database schemas": _patterns(r"schema", r"model", r"migration", r"prisma"),
    "configuration": _patterns(r"config", r"env", r"settings", r"\.env"),
    "middleware": _patterns(r"middleware"),
    "authentication": _patterns(
        r"auth", r"login", r"session", r"jwt", r"token", r"credential",
    ),
    "file access": _patterns(r"upload", r"download", r"file", r"storage", r"fs"),
    "file serving": _patterns(r"static", r"serve", r"upload", r"download"),
    "logging": _patterns(r"log", r"logger", r"monitor", r"audit"),
    "error handling": _patterns(r"error", r"exception", r"handler"),
    "encryption": _patterns(r"crypto", r"encrypt", r"hash", r"cipher", r"sign"),
    "template": _patterns(r"template", r"view", r"render", r"component"),
    "admin": _patterns(r"admin", r"dashboard", r"manage"),
    "payment": _patterns(
        r"payment", r"billing", r"stripe", r"checkout", r"subscription",
    ),
    "webhook": _patterns(r"webhook", r"hook", r"callback"),
    "seed data": _patterns(r"seed", r"fixture", r"mock"),
    "docker": _patterns(r"docker", r"compose", r"Dockerfile"),
    "ci/cd": _patterns(
        r"\.github", r"ci", r"workflow", r"jenkins", r"gitlab-ci", r"pipeline",
    ),
    "package manifests": _patterns(
        r"package\.json", r"requirements", r"go\.mod", r"Cargo\.toml", r"pom\.xml",
    ),
    "html rendering": _patterns(
        r"component", r"page", r"view", r"template", r"\.tsx", r"\.jsx",
    ),
    "url fetching": _patterns(r"fetch", r"http", r"request", r"client", r"proxy"),
}


def file_matches_rule(file_path: str, rule: Rule) -> bool:
    """
    Heuristic path match for a rule's applies-to tags.

    A rule without tags matches every file. Otherwise a tag matches when
    any known pattern group it mentions matches the path, or when any of
    its words longer than three characters appears in the path.
    """
    if not rule.applies_to:
        return True

    lowered_path = file_path.lower()

    for tag in rule.applies_to:
        normalized_tag = tag.lower().strip()

        for pattern_tag, expressions in TAG_PATTERNS.items():
            if pattern_tag in normalized_tag:
                if any(expr.search(file_path) for expr in expressions):
                    return True

        words = normalized_tag.split()
        if any(len(word) > 3 and word in lowered_path for word in words):
            return True

    return False


def severity_priority(severity: str) -> int:
    return SEVERITY_PRIORITY.get(severity.strip().lower(), DEFAULT_PRIORITY)


def highest_severity_priority(rules: Sequence[Rule]) -> int:
    return min(severity_priority(rule.severity) for rule in rules)


# ----------------------------------------------------------------------
# Components
# ----------------------------------------------------------------------


def _component_key(relative_path: str) -> str:
    parts = relative_path.split("/")
    if len(parts) <= 1:
        return "root"
    if len(parts) == 2:
        return parts[0]
    return f"{parts[0]}/{parts[1]}"


def group_into_components(files: Sequence[SourceFile]) -> List[AuditComponent]:
    """
    Heuristic components keyed by the first two path segments.

    Top-level files form the "root" component; files one directory deep
    group under that directory.
    """
    groups: Dict[str, List[SourceFile]] = {}
    for source in files:
        groups.setdefault(_component_key(source.relative_path), []).append(source)

    return [
        AuditComponent(
            name=name,
            path="." if name == "root" else name,
            files=[f.relative_path for f in members],
            languages=list(dict.fromkeys(f.language for f in members)),
            estimated_tokens=sum(estimate_tokens(f.content) for f in members),
        )
        for name, members in groups.items()
    ]


# ----------------------------------------------------------------------
# Plan
# ----------------------------------------------------------------------


def _group_by_category(rules: Sequence[Rule]) -> Dict[str, List[Rule]]:
    grouped: Dict[str, List[Rule]] = {}
    for rule in rules:
        grouped.setdefault(rule.category, []).append(rule)
    return grouped


def generate_plan(
    files: Sequence[SourceFile],
    ruleset: Ruleset,
    *,
    manifest: Optional[Manifest] = None,
    target_path: str = ".",
) -> AuditPlan:
    """
    Generate a three-wave audit plan.

    When a manifest is supplied and yields at least one non-empty
    component under target_path, manifest components and tag matching
    are used; otherwise files are grouped heuristically.
    """
    components: List[AuditComponent] = []
    if manifest is not None:
        components = load_manifest_components(manifest, target_path, files)
    if not components:
        components = group_into_components(files)

    tokens_by_file: Dict[str, int] = {
        f.relative_path: estimate_tokens(f.content) for f in files
    }

    task_counter = 0

    # ------------------------------------------------------------------
    # Wave 1: component scans
    # ------------------------------------------------------------------
    wave1: List[AuditTask] = []

    for component in components:
        tag_matched = False
        relevant_rules: List[Rule] = []

        if component.tags:
            relevant_rules = [
                rule for rule in ruleset.rules
                if match_rules_by_tags(component.tags, rule)
            ]
            tag_matched = bool(relevant_rules)

        if not relevant_rules:
            relevant_rules = [
                rule for rule in ruleset.rules
                if any(file_matches_rule(path, rule) for path in component.files)
            ]

        for category, category_rules in _group_by_category(relevant_rules).items():
            if tag_matched:
                relevant_files = list(component.files)
            else:
                relevant_files = [
                    path for path in component.files
                    if any(file_matches_rule(path, rule) for rule in category_rules)
                ]

            if not relevant_files:
                continue

            task_counter += 1
            rule_ids = [rule.id for rule in category_rules]

            wave1.append(
                AuditTask(
                    id=f"scan-{task_counter}",
                    wave=1,
                    type=AuditTaskType.COMPONENT_SCAN,
                    component=component.name,
                    rules=rule_ids,
                    files=relevant_files,
                    estimated_tokens=sum(
                        tokens_by_file.get(path, 0) for path in relevant_files
                    ),
                    priority=highest_severity_priority(category_rules),
                    description=(
                        f"Scan {component.name} against {category} "
                        f"({', '.join(rule_ids)})"
                    ),
                )
            )

    wave1.sort(key=lambda task: task.priority)

    # ------------------------------------------------------------------
    # Wave 2: cross-cutting patterns
    # ------------------------------------------------------------------
    all_files = [f.relative_path for f in files]
    all_tokens = sum(tokens_by_file.values())

    wave2: List[AuditTask] = []
    for pattern in ruleset.cross_cutting:
        task_counter += 1
        wave2.append(
            AuditTask(
                id=f"cross-{task_counter}",
                wave=2,
                type=AuditTaskType.CROSS_CUTTING,
                rules=[pattern.id, *pattern.relates_to],
                files=list(all_files),
                estimated_tokens=all_tokens,
                priority=0,
                description=f"{pattern.title}: {pattern.objective}",
            )
        )

    # ------------------------------------------------------------------
    # Wave 3: synthesis (no backend call)
    # ------------------------------------------------------------------
    task_counter += 1
    wave3 = [
        AuditTask(
            id=f"synth-{task_counter}",
            wave=3,
            type=AuditTaskType.SYNTHESIS,
            estimated_tokens=0,
            priority=0,
            description=SYNTHESIS_DESCRIPTION,
        )
    ]

    return AuditPlan(
        ruleset=ruleset.meta,
        components=components,
        waves=AuditWaves(wave1=wave1, wave2=wave2, wave3=wave3),
        stats=AuditPlanStats(
            total_tasks=len(wave1) + len(wave2) + len(wave3),
            total_rules=len(ruleset.rules) + len(ruleset.cross_cutting),
            total_files=len(files),
            estimated_tokens=(
                sum(t.estimated_tokens for t in wave1)
                + sum(t.estimated_tokens for t in wave2)
            ),
        ),
    )
