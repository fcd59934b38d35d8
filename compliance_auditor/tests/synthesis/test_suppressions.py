import logging

from compliance_auditor.app.synthesis.suppressions import (
    DEFAULT_CONFIG_REASON,
    SUPPRESS_CONFIG_FILENAME,
    InlineSuppression,
    SuppressionRule,
    apply_suppressions,
    glob_match,
    load_suppression_rules,
    parse_inline_suppressions,
    parse_suppress_config,
)
from compliance_auditor.tests.fixtures.audit_fixtures import (
    make_corroborated,
    make_file,
    make_finding,
)


# ----------------------------------------------------------------------
# Glob matching
# ----------------------------------------------------------------------

def test_double_star_spans_directories_single_star_does_not():
    assert glob_match("tests/api/users.test.ts", "tests/**")
    assert glob_match("src/api/users.ts", "src/*/users.ts")
    assert not glob_match("src/api/v1/users.ts", "src/*/users.ts")
    assert glob_match("src/a.ts", "src/?.ts")
    assert not glob_match("src/ab.ts", "src/?.ts")


def test_glob_literals_are_escaped():
    assert glob_match("docs/a+b.md", "docs/a+b.md")
    assert not glob_match("docsXa.md", "docs.a.md")


# ----------------------------------------------------------------------
# Config rules
# ----------------------------------------------------------------------

def test_config_rules_are_read_from_the_target_root(tmp_path):
    (tmp_path / SUPPRESS_CONFIG_FILENAME).write_text(
        "suppressions:\n"
        "  - rule: BAC-01\n"
        '    glob: "tests/**"\n'
        "    reason: Test fixtures are not served\n"
        "  - rule: LOG-01\n"
        "    file: src/logging/logger.ts\n"
        "  - glob: orphan/**\n",
        encoding="utf-8",
    )

    rules = parse_suppress_config(str(tmp_path))

    assert rules == [
        SuppressionRule(
            rule="BAC-01",
            glob="tests/**",
            reason="Test fixtures are not served",
        ),
        SuppressionRule(
            rule="LOG-01",
            file="src/logging/logger.ts",
            reason=DEFAULT_CONFIG_REASON,
        ),
    ]


def test_missing_config_is_not_an_error(tmp_path):
    assert parse_suppress_config(str(tmp_path)) == []


def test_malformed_config_is_ignored_with_a_warning(tmp_path, caplog):
    (tmp_path / SUPPRESS_CONFIG_FILENAME).write_text(
        "suppressions: [unclosed\n", encoding="utf-8"
    )

    with caplog.at_level(logging.WARNING):
        assert parse_suppress_config(str(tmp_path)) == []

    assert "malformed suppression config" in caplog.text


def test_non_utf8_config_is_ignored_with_a_warning(tmp_path, caplog):
    (tmp_path / SUPPRESS_CONFIG_FILENAME).write_bytes(
        b"suppressions:\n  - rule: BAC-01\n    reason: \xff\xfe\n"
    )

    with caplog.at_level(logging.WARNING):
        assert parse_suppress_config(str(tmp_path)) == []

    assert "malformed suppression config" in caplog.text


def test_entries_without_a_usable_rule_id_are_skipped():
    rules = load_suppression_rules(
        "suppressions:\n"
        "  - rule: null\n"
        "  - rule: ''\n"
        "  - rule: [BAC-01]\n"
        "  - rule: ' INJ-01 '\n"
    )

    assert [r.rule for r in rules] == ["INJ-01"]


def test_non_mapping_config_yields_no_rules():
    assert load_suppression_rules("- just\n- a list\n") == []
    assert load_suppression_rules("suppressions: nope\n") == []
    assert load_suppression_rules("") == []


# ----------------------------------------------------------------------
# Inline comments
# ----------------------------------------------------------------------

def test_inline_comment_covers_its_line_and_the_next():
    source = make_file(
        "src/api/health.ts",
        "// audit-suppress BAC-01 \"Public health endpoint\"\n"
        "router.get('/health', handler);\n",
    )

    suppressions = parse_inline_suppressions([source])

    assert [(s.line, s.rule_id, s.reason) for s in suppressions] == [
        (1, "BAC-01", "Public health endpoint"),
        (2, "BAC-01", "Public health endpoint"),
    ]


def test_inline_comment_markers_across_languages():
    source = make_file(
        "app/views.py",
        "x = 1  # audit-suppress INJ-01\n"
        "y = 2\n"
        "-- audit-suppress LOG-01 \"Migration only\"",
        language="python",
    )

    suppressions = parse_inline_suppressions([source])

    # A comment on the last line has no following line to cover.
    assert [(s.line, s.rule_id, s.reason) for s in suppressions] == [
        (1, "INJ-01", None),
        (2, "INJ-01", None),
        (3, "LOG-01", "Migration only"),
    ]


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------

def test_suppressed_findings_are_partitioned_not_discarded():
    findings = [
        make_corroborated(make_finding(rule_id="BAC-01", file="tests/api.test.ts")),
        make_corroborated(make_finding(rule_id="BAC-01", file="src/api/users.ts")),
        make_corroborated(make_finding(rule_id="INJ-01", file="src/db/query.ts", start_line=2)),
    ]
    config = [SuppressionRule(rule="BAC-01", glob="tests/**", reason="fixtures")]
    inline = [InlineSuppression(file="src/db/query.ts", line=2, rule_id="INJ-01")]

    active, suppressed = apply_suppressions(findings, config, inline)

    assert len(active) + len(suppressed) == len(findings)
    assert [c.finding.locations[0].file for c in active] == [
        "src/api/users.ts"
    ]
    assert [c.suppression_reason for c in suppressed] == [
        "fixtures",
        "Inline suppression in src/db/query.ts:2",
    ]
    assert all(c.suppressed for c in suppressed)


def test_config_rule_requires_every_given_constraint():
    finding = make_corroborated(make_finding(rule_id="BAC-01", file="src/api/users.ts"))

    wrong_rule = SuppressionRule(rule="BAC-02")
    wrong_file = SuppressionRule(rule="BAC-01", file="src/api/orders.ts")
    wrong_glob = SuppressionRule(rule="BAC-01", glob="tests/**")

    active, suppressed = apply_suppressions(
        [finding], [wrong_rule, wrong_file, wrong_glob], []
    )

    assert active == [finding]
    assert suppressed == []


def test_rule_without_path_constraints_suppresses_everywhere():
    finding = make_corroborated(make_finding(rule_id="LOG-01"))

    _, suppressed = apply_suppressions([finding], [SuppressionRule(rule="LOG-01")], [])

    assert suppressed[0].suppression_reason == DEFAULT_CONFIG_REASON


def test_inline_suppression_matches_start_line_only():
    finding = make_corroborated(make_finding(start_line=5, end_line=9))
    inline = [InlineSuppression(file="src/api/users.ts", line=7, rule_id="BAC-01")]

    active, suppressed = apply_suppressions([finding], [], inline)

    assert active == [finding]
    assert suppressed == []
