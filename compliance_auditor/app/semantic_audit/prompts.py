"""
Prompt generation for audit tasks.

Each backend request is assembled from two layers:

  1. System prompt: every rule / pattern assigned to the task, the output
     contract, and the explicit "empty findings is correct" instruction
  2. User prompt: the task's files verbatim, each line prefixed with its
     1-based number, plus the component name when scoped
"""

from __future__ import annotations

from typing import List, Sequence

from pydantic import BaseModel, ConfigDict

from compliance_auditor.app.schemas.plan import AuditTask, AuditTaskType
from compliance_auditor.app.schemas.ruleset import CrossCuttingPattern, Rule, Ruleset
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.semantic_audit.output_schema import FINDING_SCHEMA_PROSE


class PromptGenerationError(ValueError):
    """Raised when a task cannot be turned into a backend request."""


class AuditPrompt(BaseModel):
    system_prompt: str
    user_prompt: str

    model_config = ConfigDict(frozen=True, extra="forbid")


_OUTPUT_CONTRACT = f"""## Output Format
Return a JSON object with a "findings" array. Each finding must match this schema:

{FINDING_SCHEMA_PROSE}

If no violations are found, return: {{"findings": []}}

Return JSON only, no markdown fences, no explanatory text outside the JSON."""


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------


def format_files(files: Sequence[SourceFile]) -> str:
    sections = []
    for source in files:
        numbered = "\n".join(
            f"{index}→{line}"
            for index, line in enumerate(source.content.split("\n"), start=1)
        )
        sections.append(
            f"File: {source.relative_path}\n"
            f"Language: {source.language}\n\n"
            f"{numbered}"
        )
    return "\n\n---\n\n".join(sections)


def format_rule(rule: Rule) -> str:
    lines = [
        f"### {rule.id}: {rule.title}",
        f"**Severity:** {rule.severity}",
        f"**Applies to:** {', '.join(rule.applies_to)}",
        "",
        f"**Compliant:** {rule.compliant}",
        "",
        f"**Violation:** {rule.violation}",
    ]

    if rule.what_to_look_for:
        lines.extend(["", "**What to look for:**"])
        lines.extend(f"- {item}" for item in rule.what_to_look_for)

    if rule.guidance:
        lines.extend(["", f"**Guidance:** {rule.guidance}"])

    return "\n".join(lines)


def format_cross_cutting_pattern(pattern: CrossCuttingPattern) -> str:
    lines = [
        f"### {pattern.id}: {pattern.title}",
        f"**Scope:** {pattern.scope}",
        f"**Related rules:** {', '.join(pattern.relates_to)}",
        "",
        f"**Objective:** {pattern.objective}",
    ]

    if pattern.checks:
        lines.extend(["", "**What to verify:**"])
        lines.extend(f"- {check}" for check in pattern.checks)

    return "\n".join(lines)


# ----------------------------------------------------------------------
# System prompts
# ----------------------------------------------------------------------


def _component_scan_system_prompt(rules: Sequence[Rule], framework: str) -> str:
    rules_section = "\n\n".join(format_rule(rule) for rule in rules)

    return f"""You are a compliance auditor analyzing code against the {framework} framework.

## Your Role
Analyze the provided code for violations of the specific compliance rules listed below. You are checking whether the code meets the requirements of each rule, not performing a general code review.

## Rules to Check

{rules_section}

## Instructions
1. For each rule, examine the code for the specific patterns described in "What to look for"
2. Apply the "Guidance" to avoid false positives
3. Only report findings you are confident about (>70% confidence)
4. Use the exact rule ID from the rules above in each finding
5. If a rule is not applicable to the provided code, do not report findings for it
6. Reference specific line numbers in the code

{_OUTPUT_CONTRACT}"""


def _cross_cutting_system_prompt(
    pattern: CrossCuttingPattern,
    related_rules: Sequence[Rule],
    framework: str,
) -> str:
    related_section = ""
    if related_rules:
        related_section = "\n## Related Rules\n\n" + "\n\n".join(
            format_rule(rule) for rule in related_rules
        )

    return f"""You are a compliance auditor performing cross-cutting analysis against the {framework} framework.

## Your Role
Perform the analysis described below. This is a cross-cutting concern that spans multiple files and components; you are tracing behaviors across the codebase, not reviewing individual files in isolation.

## Analysis Task

{format_cross_cutting_pattern(pattern)}
{related_section}

## Instructions
1. Trace the concern across all provided files
2. Look for the specific checks listed under "What to verify"
3. For data flow analysis, report each location in the flow as a separate location entry
4. Reference related rule IDs where applicable
5. Use "{pattern.id}" as the ruleId for findings specific to this cross-cutting pattern
6. Only report findings you are confident about (>70% confidence)

{_OUTPUT_CONTRACT}"""


def _user_prompt(files: Sequence[SourceFile], task: AuditTask) -> str:
    context = f"Component: {task.component}\n" if task.component else ""

    return (
        f"{context}Analyze the following code for compliance violations "
        "per the rules in your system prompt.\n\n"
        f"{format_files(files)}\n\n"
        "Return your findings as JSON."
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------


def _rules_in_order(ruleset: Ruleset, rule_ids: Sequence[str]) -> List[Rule]:
    wanted = set(rule_ids)
    return [rule for rule in ruleset.rules if rule.id in wanted]


def generate_prompt(
    task: AuditTask,
    files: Sequence[SourceFile],
    ruleset: Ruleset,
) -> AuditPrompt:
    """
    Build the backend request for a wave-1 or wave-2 task.

    Raises PromptGenerationError for synthesis tasks and for cross-cutting
    tasks whose pattern id is not in the ruleset.
    """
    framework = ruleset.meta.framework

    if task.type == AuditTaskType.COMPONENT_SCAN:
        return AuditPrompt(
            system_prompt=_component_scan_system_prompt(
                _rules_in_order(ruleset, task.rules), framework
            ),
            user_prompt=_user_prompt(files, task),
        )

    if task.type == AuditTaskType.CROSS_CUTTING:
        pattern_id = task.rules[0] if task.rules else ""
        pattern = ruleset.find_pattern(pattern_id)
        if pattern is None:
            raise PromptGenerationError(
                f"Cross-cutting pattern {pattern_id} not found in ruleset"
            )

        return AuditPrompt(
            system_prompt=_cross_cutting_system_prompt(
                pattern,
                _rules_in_order(ruleset, task.rules[1:]),
                framework,
            ),
            user_prompt=_user_prompt(files, task),
        )

    raise PromptGenerationError("Synthesis tasks do not use file-based prompts")
