from __future__ import annotations

from dataclasses import replace

from flagsync.config import ConsistencyOptions
from flagsync.consistency import ConsistencyValidator, aggregate_checks
from flagsync.errors import err, ok
from flagsync.models import (
    CheckResult,
    CleanupOperation,
    ConsistencyIssue,
    OperationContext,
    OperationResult,
    RollbackInfo,
)


def _archive_op(key: str = "old_flag", risk: str = "low") -> CleanupOperation:
    return CleanupOperation(
        id=f"op_{key}",
        type="archive",
        flag_key=key,
        risk_level=risk,
        reason="unused",
        context=OperationContext(current_flag=None),
        rollback_info=RollbackInfo(supported=True),
    )


class _EnvClient:
    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.calls: list[tuple[str, str]] = []

    def get_environment_status(self, flag_key, env_key):
        self.calls.append((flag_key, env_key))
        if env_key in self.failing:
            return err("E_UPSTREAM", "503 from service", retryable=True)
        return ok({"enabled": False})


def _check(passed: bool, severity: str | None = None) -> CheckResult:
    issues = [] if severity is None else [ConsistencyIssue("configuration_drift", severity, "m", "r")]
    return CheckResult(passed=passed, check_id="c", description="d", issues=issues, duration_ms=0)


def test_pre_operation_runs_named_checks(make_flag) -> None:
    validator = ConsistencyValidator()

    result = validator.validate_pre_operation(_archive_op(), make_flag("old_flag"), {}).unwrap()

    assert [check.check_id for check in result.checks] == [
        "flag_state_validation",
        "operation_prerequisites",
        "cross_reference_validation",
        "risk_assessment_validation",
    ]
    assert result.passed
    assert not result.rollback_recommended


def test_pre_operation_flags_code_references_to_archived_flag(make_flag, usage) -> None:
    validator = ConsistencyValidator()
    flag = make_flag("old_flag", archived=True)

    result = validator.validate_pre_operation(_archive_op(), flag, {"old_flag": [usage()]}).unwrap()

    assert not result.passed
    assert result.rollback_recommended


def test_high_risk_without_rollback_fails_risk_check(make_flag) -> None:
    op = replace(_archive_op(risk="high"), rollback_info=RollbackInfo(supported=False))

    result = ConsistencyValidator().validate_pre_operation(op, make_flag("old_flag"), {}).unwrap()

    risk = next(c for c in result.checks if c.check_id == "risk_assessment_validation")
    assert not risk.passed


def test_deep_validation_reports_remote_failures(make_flag) -> None:
    client = _EnvClient(failing={"staging"})
    validator = ConsistencyValidator(client, ConsistencyOptions(deep_validation=True))
    flag = make_flag("old_flag", environments={"production": {}, "staging": {}})

    result = validator.validate_pre_operation(_archive_op(), flag, {}).unwrap()

    deep = result.checks[-1]
    assert deep.check_id == "deep_validation"
    assert deep.passed
    assert [issue.severity for issue in deep.issues] == ["medium"]
    assert client.calls == [("old_flag", "production"), ("old_flag", "staging")]


def test_post_operation_archive_must_flip_state(make_flag) -> None:
    validator = ConsistencyValidator(options=ConsistencyOptions(enable_auto_rollback=False))
    op = _archive_op()
    done = OperationResult(operation_id=op.id, status="completed")

    good = validator.validate_post_operation(
        op, done, make_flag("old_flag"), make_flag("old_flag", archived=True), {}
    ).unwrap()
    bad = validator.validate_post_operation(
        op, done, make_flag("old_flag"), make_flag("old_flag"), {}
    ).unwrap()

    assert good.passed
    assert not bad.passed
    transition = next(c for c in bad.checks if c.check_id == "state_transition_validation")
    assert transition.issues[0].severity == "high"
    assert bad.rollback_recommended


def test_post_operation_enable_must_unarchive(make_flag) -> None:
    op = replace(_archive_op(), type="enable")
    done = OperationResult(operation_id=op.id, status="completed")

    result = ConsistencyValidator().validate_post_operation(
        op, done, make_flag("old_flag", archived=True), make_flag("old_flag", archived=True), {}
    ).unwrap()

    assert not result.passed


def test_auto_rollback_forces_recommendation(make_flag) -> None:
    op = _archive_op()
    slow = OperationResult(operation_id=op.id, status="failed", message="timeout")

    result = ConsistencyValidator().validate_post_operation(
        op, slow, make_flag("old_flag"), make_flag("old_flag", archived=True), {}
    ).unwrap()

    assert not result.passed
    assert result.rollback_recommended
    assert result.recommendations[0].startswith("Automatic rollback")


def test_aggregation_thresholds() -> None:
    advisory = aggregate_checks([_check(True, "medium"), _check(True), _check(True)])
    assert advisory.passed
    assert not advisory.rollback_recommended
    assert advisory.summary.warnings == 1

    one_failed = aggregate_checks([_check(False), _check(True), _check(True), _check(True)])
    assert not one_failed.passed
    assert not one_failed.rollback_recommended

    two_failed = aggregate_checks([_check(False), _check(False), _check(True), _check(True)])
    assert two_failed.rollback_recommended

    critical = aggregate_checks([_check(True, "critical")])
    assert critical.summary.critical_issues == 1
    assert critical.rollback_recommended


def test_cross_reference_and_integrity_helpers(make_flag, usage) -> None:
    validator = ConsistencyValidator()
    usages = {"ghost": [usage()]}

    cross = validator.validate_cross_references("ghost", None, usages).unwrap()
    integrity = validator.validate_data_integrity("ghost", None, usages).unwrap()
    mismatch = validator.validate_data_integrity("a", make_flag("b"), {}).unwrap()

    assert not cross.passed
    assert cross.metadata["code_usage_count"] == 1
    assert not integrity.passed
    assert any(issue.severity == "critical" for issue in mismatch.issues)


def test_consistency_report(make_flag, usage) -> None:
    flags = [make_flag("orphan"), make_flag("dead", archived=True), make_flag("fine")]
    usages = {"dead": [usage()], "fine": [usage()], "ghost": [usage()]}

    report = ConsistencyValidator().generate_consistency_report(
        ["orphan", "dead", "fine", "ghost"], flags, usages
    ).unwrap()

    assert report.total_flags == 4
    assert report.consistent_flags == 2
    assert report.inconsistent_flags == 2
    assert report.critical_issues == 2
    assert report.warnings == 1
