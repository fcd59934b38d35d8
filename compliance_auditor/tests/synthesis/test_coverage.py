import pytest

from compliance_auditor.app.planning.planner import generate_plan
from compliance_auditor.app.planning.ruleset_parser import parse_ruleset
from compliance_auditor.app.schemas.compliance_report import (
    COVERAGE_REASON_AGENT_FAILED,
    COVERAGE_REASON_BUDGET_EXCEEDED,
    COVERAGE_REASON_NOT_EXECUTED,
)
from compliance_auditor.app.synthesis.coverage import (
    compute_coverage,
    compute_coverage_entries,
)
from compliance_auditor.tests.fixtures.audit_fixtures import (
    SAMPLE_RULESET,
    make_result,
    sample_files,
)


def _plan():
    return generate_plan(sample_files(), parse_ruleset(SAMPLE_RULESET))


def test_every_wave_one_rule_pair_has_one_entry():
    plan = _plan()

    entries = compute_coverage_entries(plan, [], set(), set())

    assert [(e.component, e.rule_id) for e in entries] == [
        ("src/api", "BAC-01"),
        ("src/api", "BAC-02"),
        ("src/db", "INJ-01"),
        ("src/logging", "LOG-01"),
    ]


def test_each_unchecked_pair_carries_its_reason():
    plan = _plan()
    results = [make_result("scan-2", rules=("BAC-01", "BAC-02"))]

    entries = compute_coverage_entries(plan, results, {"scan-3"}, {"scan-1"})
    by_rule = {e.rule_id: e for e in entries}

    assert by_rule["BAC-01"].checked and by_rule["BAC-01"].reason is None
    assert by_rule["BAC-02"].checked
    assert not by_rule["INJ-01"].checked
    assert by_rule["INJ-01"].reason == COVERAGE_REASON_AGENT_FAILED
    assert by_rule["LOG-01"].reason == COVERAGE_REASON_BUDGET_EXCEEDED


def test_tasks_that_never_ran_are_marked_not_executed():
    entries = compute_coverage_entries(_plan(), [], set(), set())

    assert {e.reason for e in entries} == {COVERAGE_REASON_NOT_EXECUTED}
    assert not any(e.checked for e in entries)


def test_failure_takes_precedence_over_completion():
    plan = _plan()

    entries = compute_coverage_entries(
        plan, [make_result("scan-3", rules=("INJ-01",))], {"scan-3"}, set()
    )

    inj = next(e for e in entries if e.rule_id == "INJ-01")
    assert inj.reason == COVERAGE_REASON_AGENT_FAILED


def test_ratios_use_plan_totals():
    plan = _plan()
    results = [
        make_result("scan-1", rules=("LOG-01",)),
        make_result("scan-2", rules=("BAC-01", "BAC-02")),
        make_result("scan-3", rules=("INJ-01",)),
    ]

    coverage = compute_coverage(plan, results, set(), set())

    # Five components (two never scanned) and five rules (one cross-cutting).
    assert coverage.component_coverage == pytest.approx(3 / 5)
    assert coverage.rule_coverage == pytest.approx(4 / 5)


def test_cross_cutting_results_do_not_add_coverage_entries():
    plan = _plan()

    coverage = compute_coverage(
        plan, [make_result("cross-4", component=None, rules=("CROSS-01",))], set(), set()
    )

    assert len(coverage.entries) == 4
    assert coverage.component_coverage == 0.0
    assert coverage.rule_coverage == 0.0
