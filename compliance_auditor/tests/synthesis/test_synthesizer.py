from datetime import datetime, timedelta, timezone

from compliance_auditor.app.planning.planner import generate_plan
from compliance_auditor.app.planning.ruleset_parser import parse_ruleset
from compliance_auditor.app.schemas.compliance_report import DiffScope
from compliance_auditor.app.schemas.findings import AuditSeverity
from compliance_auditor.app.synthesis.suppressions import SUPPRESS_CONFIG_FILENAME
from compliance_auditor.app.synthesis.synthesizer import (
    isoformat_utc,
    synthesize_report,
)
from compliance_auditor.tests.fixtures.audit_fixtures import (
    SAMPLE_RULESET,
    make_file,
    make_finding,
    make_result,
    sample_files,
)


STARTED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _synthesize(results, files=None, **overrides):
    ruleset = parse_ruleset(SAMPLE_RULESET)
    files = sample_files() if files is None else files
    kwargs = dict(
        plan=generate_plan(files, ruleset),
        ruleset=ruleset,
        files=files,
        results=results,
        failed_task_ids=set(),
        skipped_task_ids=set(),
        started_at=STARTED_AT,
    )
    kwargs.update(overrides)
    return synthesize_report(**kwargs)


def test_isoformat_uses_z_suffix():
    assert isoformat_utc(STARTED_AT) == "2026-03-01T12:00:00Z"

    offset = timezone(timedelta(hours=2))
    assert isoformat_utc(datetime(2026, 3, 1, 14, 0, tzinfo=offset)) == "2026-03-01T12:00:00Z"


def test_report_scope_and_metadata_reflect_the_run():
    results = [
        make_result("scan-2", [make_finding()], model="gpt-4.1", tokens_used=300),
        make_result(
            "cross-4",
            [make_finding(start_line=1, end_line=2)],
            component=None,
            model="gpt-4.1-mini",
            tokens_used=200,
        ),
        make_result("scan-3", model="gpt-4.1", tokens_used=50),
    ]

    report = _synthesize(
        results,
        failed_task_ids={"scan-1"},
        skipped_task_ids=set(),
        diff=DiffScope(ref="main", changed_files=2),
        token_budget=10_000,
    )

    assert report.scope.ruleset == "OWASP Top 10"
    assert report.scope.ruleset_version == "1.2.0"
    assert report.scope.total_files == 5
    assert report.scope.diff == DiffScope(ref="main", changed_files=2)
    assert "src/utils" in report.scope.components

    metadata = report.metadata
    assert metadata.started_at == "2026-03-01T12:00:00Z"
    assert metadata.tasks_executed == 3
    assert metadata.tasks_failed == 1
    assert metadata.tasks_skipped == 0
    assert metadata.total_tokens_used == 550
    assert metadata.models == ["gpt-4.1", "gpt-4.1-mini"]
    assert metadata.token_budget == 10_000
    assert metadata.suppressed_count == 0


def test_findings_are_corroborated_and_summarized():
    results = [
        make_result("scan-2", [make_finding(confidence=0.7)]),
        make_result("cross-4", [make_finding(confidence=0.6)], component=None),
        make_result(
            "scan-3",
            [make_finding(rule_id="INJ-01", file="src/db/query.ts", severity=AuditSeverity.CRITICAL)],
        ),
    ]

    report = _synthesize(results)

    assert [c.finding.rule_id for c in report.findings] == ["INJ-01", "BAC-01"]
    assert report.findings[1].corroborations == 2
    assert report.summary.critical == 1
    assert report.summary.high == 1
    assert report.summary.total == 2


def test_suppressions_apply_only_with_a_target_path(tmp_path):
    (tmp_path / SUPPRESS_CONFIG_FILENAME).write_text(
        "suppressions:\n  - rule: LOG-01\n    reason: Reviewed\n",
        encoding="utf-8",
    )
    files = sample_files() + [
        make_file(
            "src/api/health.ts",
            "// audit-suppress BAC-01\nrouter.get('/health', ok);\n",
        )
    ]
    results = [
        make_result(
            "scan-2",
            [
                make_finding(file="src/api/health.ts", start_line=2),
                make_finding(file="src/api/users.ts", start_line=1),
            ],
        ),
        make_result(
            "scan-1",
            [make_finding(rule_id="LOG-01", file="src/logging/logger.ts", severity=AuditSeverity.LOW)],
        ),
    ]

    unscoped = _synthesize(results, files=files)
    scoped = _synthesize(results, files=files, target_path=str(tmp_path))

    assert len(unscoped.findings) == 3
    assert unscoped.suppressed == []

    assert [c.finding.locations[0].file for c in scoped.findings] == ["src/api/users.ts"]
    assert scoped.metadata.suppressed_count == 2
    assert {c.suppression_reason for c in scoped.suppressed} == {
        "Reviewed",
        "Inline suppression in src/api/health.ts:2",
    }
    assert scoped.summary.total == 1
    assert scoped.summary.low == 0


def test_coverage_reflects_failed_and_skipped_tasks():
    report = _synthesize(
        [make_result("scan-2", rules=("BAC-01", "BAC-02"))],
        failed_task_ids={"scan-3"},
        skipped_task_ids={"scan-1"},
    )

    reasons = {e.rule_id: e.reason for e in report.coverage.entries}
    assert reasons == {
        "BAC-01": None,
        "BAC-02": None,
        "INJ-01": "agent failed",
        "LOG-01": "budget exceeded",
    }


def test_undecodable_suppression_config_does_not_lose_the_report(tmp_path):
    (tmp_path / SUPPRESS_CONFIG_FILENAME).write_bytes(b"suppressions: \xff\xfe\n")
    results = [make_result("scan-2", [make_finding()])]

    report = _synthesize(results, target_path=str(tmp_path))

    assert report.summary.total == 1
    assert report.suppressed == []
