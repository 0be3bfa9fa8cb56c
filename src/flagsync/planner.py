from __future__ import annotations

import hashlib
import logging
from dataclasses import asdict

from flagsync.config import CleanupPlanOptions
from flagsync.differences import parse_timestamp
from flagsync.errors import Result, err, ok
from flagsync.models import (
    PHASE_NAMES,
    RISK_LEVELS,
    AnalysisResult,
    CleanupOperation,
    CleanupPlan,
    ExecutionOrder,
    ExecutionPhase,
    FlagDifference,
    OperationContext,
    PlanMetadata,
    RollbackInfo,
    ValidationCheck,
    risk_rank,
)
from flagsync.plan_validation import validate_plan

logger = logging.getLogger(__name__)

ACTION_TO_OPERATION = {
    "archive_flag": "archive",
    "unarchive_flag": "enable",
    "create_flag": "update",
}
OPERATION_COST_MS = {
    "archive": 3000,
    "enable": 2000,
    "disable": 2000,
    "update": 2000,
    "no_action": 0,
}
NETWORK_ROUND_TRIP_MS = 500
REQUIRED_CAPABILITIES = {
    "archive": "flag_service.archive_flags",
    "enable": "flag_service.unarchive_flags",
    "update": "flag_service.create_flag",
}


def build_cleanup_plan(
    analysis: AnalysisResult,
    options: CleanupPlanOptions,
) -> Result[CleanupPlan]:
    """Turn an analysis into a risk-ordered, validated draft plan.

    The plan is a pure function of its inputs: ids are content hashes and
    the timestamp is taken from the analysis.
    """
    try:
        return ok(_build(analysis, options))
    except Exception as exc:  # noqa: BLE001
        logger.exception("plan_build_failed")
        return err("E_PLAN", f"Cleanup plan generation failed: {exc}")


def _build(analysis: AnalysisResult, options: CleanupPlanOptions) -> CleanupPlan:
    operations = [
        _operation_for(difference)
        for difference in analysis.differences
        if difference.recommended_action in ACTION_TO_OPERATION
    ]
    execution_order = _execution_order(operations)
    by_id = {op.id: op for op in operations}
    operations = [by_id[op_id] for phase in execution_order.phases for op_id in phase.operation_ids]

    validation = validate_plan(
        operations,
        options,
        now=parse_timestamp(analysis.timestamp),
    ).unwrap()
    metadata = PlanMetadata(
        estimated_duration_ms=estimate_duration_ms(operations),
        risk_assessment=validation.risk_assessment,
        dependencies=sorted({REQUIRED_CAPABILITIES[op.type] for op in operations}),
    )
    plan = CleanupPlan(
        id=_plan_id(analysis.timestamp, operations),
        timestamp=analysis.timestamp,
        status="draft",
        analysis=analysis,
        operations=operations,
        execution_order=execution_order,
        options=asdict(options),
        validation=validation,
        metadata=metadata,
    )
    logger.info(
        "plan_built plan_id=%s operations=%d valid=%s overall_risk=%s estimated_ms=%d",
        plan.id,
        len(operations),
        validation.is_valid,
        validation.risk_assessment.overall_risk,
        metadata.estimated_duration_ms,
    )
    return plan


def _operation_for(difference: FlagDifference) -> CleanupOperation:
    op_type = ACTION_TO_OPERATION[difference.recommended_action]
    remote = difference.remote_flag
    return CleanupOperation(
        id=_operation_id(op_type, difference.flag_key),
        type=op_type,
        flag_key=difference.flag_key,
        risk_level=difference.risk_level,
        reason=difference.description,
        context=OperationContext(current_flag=remote, code_usages=list(difference.usages)),
        validation_checks=_validation_checks(op_type, difference),
        rollback_info=_rollback_info(op_type, difference),
    )


def _validation_checks(op_type: str, difference: FlagDifference) -> list[ValidationCheck]:
    remote = difference.remote_flag
    if op_type == "archive":
        return [
            ValidationCheck(
                id="flag_exists_remotely",
                description="Flag exists in the flag service",
                status="passed" if remote is not None else "failed",
            ),
            ValidationCheck(
                id="no_code_usages",
                description="Flag has no references in the codebase",
                status="passed" if not difference.usages else "failed",
            ),
        ]
    if op_type == "enable":
        return [
            ValidationCheck(
                id="flag_is_archived",
                description="Flag is currently archived",
                status="passed" if remote is not None and remote.archived else "failed",
            ),
        ]
    return [
        ValidationCheck(
            id="flag_missing_remotely",
            description="Flag does not exist in the flag service yet",
            status="passed" if remote is None else "failed",
        ),
        ValidationCheck(
            id="manual_creation",
            description="Flag configuration must be defined by a person",
            required=False,
        ),
    ]


def _rollback_info(op_type: str, difference: FlagDifference) -> RollbackInfo:
    key = difference.flag_key
    if op_type == "archive":
        return RollbackInfo(
            supported=True,
            previous_state={"archived": False},
            instructions=f"Unarchive flag '{key}' to restore its previous state",
        )
    if op_type == "enable":
        return RollbackInfo(
            supported=True,
            previous_state={"archived": True},
            instructions=f"Archive flag '{key}' again to restore its previous state",
        )
    return RollbackInfo(
        supported=False,
        previous_state={"exists": False},
        instructions=f"Creating flag '{key}' cannot be undone automatically; delete it by hand",
    )


def _execution_order(operations: list[CleanupOperation]) -> ExecutionOrder:
    for op in operations:
        risk_rank(op.risk_level)
    phases: list[ExecutionPhase] = []
    for level in RISK_LEVELS:
        ids = [op.id for op in operations if op.risk_level == level]
        if level == "critical" and not ids:
            continue
        phases.append(ExecutionPhase(name=PHASE_NAMES[level], operation_ids=ids))
    return ExecutionOrder(
        strategy="risk_based",
        phases=phases,
        dependencies={op.id: list(op.context.dependencies) for op in operations if op.context.dependencies},
    )


def estimate_duration_ms(operations: list[CleanupOperation]) -> int:
    return sum(OPERATION_COST_MS[op.type] + NETWORK_ROUND_TRIP_MS for op in operations)


def _operation_id(op_type: str, flag_key: str) -> str:
    digest = hashlib.sha256(f"{op_type}:{flag_key}".encode("utf-8")).hexdigest()
    return f"op_{digest[:12]}"


def _plan_id(timestamp: str, operations: list[CleanupOperation]) -> str:
    hasher = hashlib.sha256(timestamp.encode("utf-8"))
    for op in operations:
        hasher.update(op.id.encode("utf-8"))
    return f"plan_{hasher.hexdigest()[:16]}"
