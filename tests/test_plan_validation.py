from __future__ import annotations

from flagsync.config import CleanupPlanOptions, SafetyChecks
from flagsync.models import CleanupOperation, OperationContext, RollbackInfo
from flagsync.plan_validation import validate_plan


def _op(key: str, risk: str = "low", rollback: bool = True, deps=(), flag=None, op_type: str = "archive"):
    return CleanupOperation(
        id=f"op_{key}",
        type=op_type,
        flag_key=key,
        risk_level=risk,
        reason="test",
        context=OperationContext(current_flag=flag, dependencies=list(deps)),
        rollback_info=RollbackInfo(supported=rollback),
    )


def test_empty_plan_is_valid() -> None:
    validation = validate_plan([], CleanupPlanOptions()).unwrap()

    assert validation.is_valid
    assert validation.errors == []


def test_size_limit() -> None:
    ops = [_op(f"f{i}") for i in range(3)]

    validation = validate_plan(ops, CleanupPlanOptions(max_flags_per_plan=2)).unwrap()

    assert not validation.is_valid
    assert validation.errors == ["Plan contains 3 operations, exceeding maximum of 2"]


def test_unknown_dependency_warns_within_tolerance() -> None:
    ops = [_op("a", deps=["op_b"]), _op("b"), _op("c", deps=["ghost"])]

    validation = validate_plan(ops, CleanupPlanOptions()).unwrap()

    assert validation.is_valid
    assert len(validation.warnings) == 1
    assert "ghost" in validation.warnings[0]


def test_unknown_dependency_is_error_above_tolerance() -> None:
    ops = [_op("a", risk="high", deps=["ghost"])]

    validation = validate_plan(
        ops,
        CleanupPlanOptions(safety_checks=SafetyChecks(check_recent_usage=False)),
    ).unwrap()

    assert not validation.is_valid
    assert "ghost" in validation.errors[0]


def test_recent_usage_is_a_warning(make_flag, now) -> None:
    ops = [_op("fresh", risk="high", flag=make_flag("fresh", age_days=2))]

    validation = validate_plan(ops, CleanupPlanOptions(risk_tolerance="high"), now=now).unwrap()

    assert validation.is_valid
    assert any("last 7 days" in warning for warning in validation.warnings)


def test_high_risk_without_rollback_is_error() -> None:
    ops = [_op("a", risk="high", rollback=False, op_type="update")]

    validation = validate_plan(ops, CleanupPlanOptions()).unwrap()

    assert not validation.is_valid
    assert "no rollback support" in validation.errors[0]


def test_rollback_enforcement_can_be_disabled() -> None:
    ops = [_op("a", risk="high", rollback=False)]
    options = CleanupPlanOptions(
        risk_tolerance="high",
        safety_checks=SafetyChecks(enforce_rollback_capability=False),
    )

    assert validate_plan(ops, options).unwrap().is_valid


def test_critical_operations_need_confirmation() -> None:
    ops = [_op("a", risk="critical")]

    with_confirmation = validate_plan(ops, CleanupPlanOptions()).unwrap()
    without = validate_plan(
        ops,
        CleanupPlanOptions(safety_checks=SafetyChecks(require_confirmation=False)),
    ).unwrap()

    assert with_confirmation.is_valid
    assert any("critical-risk" in w for w in with_confirmation.warnings)
    assert not without.is_valid
    assert with_confirmation.risk_assessment.overall_risk == "critical"
