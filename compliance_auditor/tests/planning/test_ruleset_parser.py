import pytest

from compliance_auditor.app.planning.ruleset_parser import (
    RulesetParseError,
    extract_field,
    extract_list,
    parse_ruleset,
)
from compliance_auditor.tests.fixtures.audit_fixtures import SAMPLE_RULESET


# ----------------------------------------------------------------------
# Front-matter
# ----------------------------------------------------------------------

def test_frontmatter_metadata_is_parsed():
    ruleset = parse_ruleset(SAMPLE_RULESET)

    assert ruleset.meta.framework == "OWASP Top 10"
    assert ruleset.meta.version == "2021"
    assert ruleset.meta.ruleset_version == "1.2.0"
    assert ruleset.meta.scope == "Web application source code"
    assert ruleset.meta.languages == ["typescript", "python"]


def test_frontmatter_defaults_apply_when_keys_are_missing():
    ruleset = parse_ruleset("---\ntitle: Minimal\n---\n")

    assert ruleset.meta.framework == "unknown"
    assert ruleset.meta.version == "0"
    assert ruleset.meta.ruleset_version == "0.1.0"
    assert ruleset.meta.scope == ""
    assert ruleset.meta.languages == []
    assert ruleset.rules == []
    assert ruleset.cross_cutting == []


def test_camel_case_ruleset_version_is_accepted():
    ruleset = parse_ruleset("---\nframework: X\nrulesetVersion: '2.0.0'\n---\n")

    assert ruleset.meta.ruleset_version == "2.0.0"


def test_missing_frontmatter_is_fatal():
    with pytest.raises(RulesetParseError, match="frontmatter"):
        parse_ruleset("## Broken Access Control\n\n### BAC-01: Missing check\n")


def test_crlf_line_endings_are_tolerated():
    ruleset = parse_ruleset(SAMPLE_RULESET.replace("\n", "\r\n"))

    assert ruleset.meta.framework == "OWASP Top 10"
    assert [rule.id for rule in ruleset.rules] == [
        "BAC-01",
        "BAC-02",
        "INJ-01",
        "LOG-01",
    ]


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------

def test_rules_are_transcribed_with_their_category():
    ruleset = parse_ruleset(SAMPLE_RULESET)
    rule = ruleset.find_rule("BAC-01")

    assert rule is not None
    assert rule.title == "Missing authorization check"
    assert rule.category == "Broken Access Control"
    assert rule.severity == "Critical"
    assert rule.applies_to == ["API routes", "HTTP handlers"]
    assert rule.compliant == "Every handler verifies the caller's permissions."
    assert rule.violation == "A handler returns data without checking authorization."
    assert rule.what_to_look_for == [
        "Route handlers without an auth guard",
        "Direct object references without ownership checks",
    ]


def test_multiline_field_runs_until_next_block():
    rule = parse_ruleset(SAMPLE_RULESET).find_rule("BAC-01")

    assert rule.guidance == (
        "Public health endpoints are exempt.\n"
        "Internal admin tools still need a guard."
    )


def test_missing_severity_defaults_to_medium():
    text = (
        "---\nframework: X\n---\n\n"
        "## Misc\n\n"
        "### MISC-01: Something\n"
        "**Applies to:** configuration\n"
    )
    rule = parse_ruleset(text).rules[0]

    assert rule.severity == "Medium"
    assert rule.applies_to == ["configuration"]
    assert rule.what_to_look_for == []
    assert rule.guidance == ""


def test_severity_is_stored_verbatim():
    text = "---\nframework: X\n---\n\n## Misc\n\n### MISC-01: T\n**Severity:** HIGH\n"

    assert parse_ruleset(text).rules[0].severity == "HIGH"


# ----------------------------------------------------------------------
# Cross-cutting patterns
# ----------------------------------------------------------------------

def test_cross_cutting_section_yields_patterns_not_rules():
    ruleset = parse_ruleset(SAMPLE_RULESET)

    assert ruleset.find_rule("CROSS-01") is None
    assert len(ruleset.cross_cutting) == 1

    pattern = ruleset.find_pattern("CROSS-01")
    assert pattern.title == "Consistent authorization"
    assert pattern.scope == "All HTTP entry points"
    assert pattern.relates_to == ["BAC-01", "BAC-02"]
    assert pattern.objective == "Every entry point applies the same authorization guard."
    assert pattern.checks == [
        "all routes share the guard",
        "no route bypasses the middleware",
    ]


def test_cross_cutting_heading_match_is_case_insensitive_and_scope_defaults():
    text = (
        "---\nframework: X\n---\n\n"
        "## CROSS-CUTTING CONCERNS\n\n"
        "### CROSS-07: Secrets handling\n"
        "**Objective:** Trace secrets.\n"
    )
    ruleset = parse_ruleset(text)

    assert ruleset.rules == []
    assert ruleset.cross_cutting[0].id == "CROSS-07"
    assert ruleset.cross_cutting[0].scope == "Full codebase"
    assert ruleset.cross_cutting[0].relates_to == []


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------

def test_extract_field_returns_none_when_absent():
    assert extract_field("### X-1: T\n**Severity:** Low\n", "Guidance") is None


def test_extract_list_ignores_non_bullet_lines():
    block = (
        "### X-1: T\n"
        "**What to look for:**\n"
        "Intro sentence\n"
        "- first\n"
        "  - nested\n"
        "**Guidance:** none\n"
    )

    assert extract_list(block, "What to look for") == ["first", "nested"]
