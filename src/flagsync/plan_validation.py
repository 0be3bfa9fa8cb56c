from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from flagsync.config import CleanupPlanOptions
from flagsync.differences import RECENT_DAYS, parse_timestamp
from flagsync.errors import Result, err, ok
from flagsync.models import CleanupOperation, PlanValidation, RiskAssessment, risk_rank

logger = logging.getLogger(__name__)


def assess_risk(operations: Sequence[CleanupOperation]) -> RiskAssessment:
    if not operations:
        return RiskAssessment(overall_risk="low", high_risk_operations=0)
    overall = max((op.risk_level for op in operations), key=risk_rank)
    high = [op for op in operations if risk_rank(op.risk_level) >= risk_rank("high")]
    archives = sum(1 for op in operations if op.type == "archive")
    impact: list[str] = []
    if archives:
        impact.append(f"{archives} flag(s) will be archived")
    if high:
        impact.append(f"{len(high)} operation(s) touch recently changed or high-impact flags")
    recommendations: list[str] = []
    if high:
        recommendations.append("Review high-risk operations manually before execution")
    if len(operations) > 10:
        recommendations.append("Consider splitting the plan into smaller batches")
    return RiskAssessment(
        overall_risk=overall,
        high_risk_operations=len(high),
        potential_impact=impact,
        recommendations=recommendations,
    )


def validate_plan(
    operations: Sequence[CleanupOperation],
    options: CleanupPlanOptions,
    now: datetime | None = None,
) -> Result[PlanValidation]:
    """Run the safety checks over a list of operations.

    Errors block execution, warnings are advisory. An empty list is valid.
    """
    for op in operations:
        risk_rank(op.risk_level)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    try:
        return ok(_validate(operations, options, now))
    except Exception as exc:  # noqa: BLE001
        logger.exception("plan_validation_failed")
        return err("E_VALIDATION", f"Plan validation failed: {exc}")


def _validate(
    operations: Sequence[CleanupOperation],
    options: CleanupPlanOptions,
    now: datetime,
) -> PlanValidation:
    errors: list[str] = []
    warnings: list[str] = []
    info: list[str] = [f"Plan contains {len(operations)} operation(s)"]
    checks = options.safety_checks
    tolerance = risk_rank(options.risk_tolerance)

    if len(operations) > options.max_flags_per_plan:
        errors.append(
            f"Plan contains {len(operations)} operations, exceeding maximum of "
            f"{options.max_flags_per_plan}"
        )

    if checks.validate_dependencies:
        known = {op.id for op in operations} | {op.flag_key for op in operations}
        for op in operations:
            for dependency in op.context.dependencies:
                if dependency in known and dependency not in (op.id, op.flag_key):
                    continue
                message = (
                    f"Operation {op.id} ({op.flag_key}) depends on '{dependency}' "
                    f"which is not part of this plan"
                )
                if risk_rank(op.risk_level) > tolerance:
                    errors.append(message)
                else:
                    warnings.append(message)

    if checks.check_recent_usage:
        for op in operations:
            flag = op.context.current_flag
            updated = parse_timestamp(flag.updated_time) if flag is not None else None
            if updated is None:
                continue
            if (now - updated).total_seconds() <= RECENT_DAYS * 86400:
                warnings.append(
                    f"Flag '{op.flag_key}' was modified within the last {RECENT_DAYS} days; "
                    f"verify it is really unused"
                )

    if checks.enforce_rollback_capability:
        for op in operations:
            if risk_rank(op.risk_level) >= risk_rank("high") and not op.rollback_info.supported:
                errors.append(
                    f"Operation {op.id} ({op.flag_key}) is {op.risk_level} risk "
                    f"but has no rollback support"
                )

    critical = [op for op in operations if op.risk_level == "critical"]
    if critical:
        message = f"Plan contains {len(critical)} critical-risk operation(s)"
        if checks.require_confirmation:
            warnings.append(message + "; explicit confirmation required")
        else:
            errors.append(message + " without confirmation enabled")

    risk = assess_risk(operations)
    if operations and risk_rank(risk.overall_risk) > tolerance:
        warnings.append(
            f"Overall plan risk '{risk.overall_risk}' exceeds tolerance '{options.risk_tolerance}'"
        )

    validation = PlanValidation(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        info=info,
        risk_assessment=risk,
    )
    logger.info(
        "plan_validated operations=%d valid=%s errors=%d warnings=%d",
        len(operations),
        validation.is_valid,
        len(errors),
        len(warnings),
    )
    return validation
