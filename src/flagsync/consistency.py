"""Pre/post-operation consistency checks between the flag service and code."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from flagsync.config import ConsistencyOptions
from flagsync.differences import parse_timestamp
from flagsync.errors import Result, err, ok
from flagsync.flag_service import FlagServiceClient
from flagsync.models import (
    BLOCKING_SEVERITIES,
    CheckResult,
    CleanupOperation,
    ConsistencyIssue,
    ConsistencyReport,
    ConsistencySummary,
    ConsistencyValidationResult,
    FlagConsistency,
    FlagUsage,
    OperationResult,
    RemoteFlag,
)

logger = logging.getLogger(__name__)

UsageMap = Mapping[str, Sequence[FlagUsage]]


def _passed(issues: list[ConsistencyIssue]) -> bool:
    return not any(issue.severity in BLOCKING_SEVERITIES for issue in issues)


def _check(
    check_id: str,
    description: str,
    issues: list[ConsistencyIssue],
    started: float,
    metadata: dict | None = None,
) -> CheckResult:
    return CheckResult(
        passed=_passed(issues),
        check_id=check_id,
        description=description,
        issues=issues,
        duration_ms=int((time.monotonic() - started) * 1000),
        metadata=metadata or {},
    )


class ConsistencyValidator:
    def __init__(
        self,
        client: FlagServiceClient | None = None,
        options: ConsistencyOptions | None = None,
    ) -> None:
        self.client = client
        self.options = options or ConsistencyOptions()

    def validate_pre_operation(
        self,
        operation: CleanupOperation,
        current_flag: RemoteFlag | None,
        usages: UsageMap,
    ) -> Result[ConsistencyValidationResult]:
        logger.info(
            "pre_validation_started operation_id=%s flag_key=%s type=%s",
            operation.id,
            operation.flag_key,
            operation.type,
        )
        try:
            checks = [
                self._flag_state(operation.flag_key, current_flag, usages),
                self._prerequisites(operation),
                self._cross_references(operation.flag_key, current_flag, usages),
                self._risk_assessment(operation),
            ]
            if self.options.deep_validation:
                checks.append(self._deep_validation(operation.flag_key, current_flag))
            result = aggregate_checks(checks)
        except Exception as exc:  # noqa: BLE001
            logger.exception("pre_validation_failed operation_id=%s", operation.id)
            return err("E_CONSISTENCY", f"Pre-operation validation failed: {exc}")
        logger.info(
            "pre_validation_completed operation_id=%s passed=%s issues=%d",
            operation.id,
            result.passed,
            result.summary.total_issues,
        )
        return ok(result)

    def validate_post_operation(
        self,
        operation: CleanupOperation,
        operation_result: OperationResult,
        pre_state: RemoteFlag | None,
        post_state: RemoteFlag | None,
        usages: UsageMap,
        usage_timestamp: str | None = None,
    ) -> Result[ConsistencyValidationResult]:
        logger.info(
            "post_validation_started operation_id=%s flag_key=%s status=%s",
            operation.id,
            operation.flag_key,
            operation_result.status,
        )
        try:
            checks = [
                self._operation_result(operation_result),
                self._state_transition(operation, pre_state, post_state),
                self._cross_references(operation.flag_key, post_state, usages),
                self._data_integrity(operation.flag_key, post_state, usages, usage_timestamp),
            ]
            result = aggregate_checks(checks)
            if not result.passed and self.options.enable_auto_rollback:
                result = ConsistencyValidationResult(
                    timestamp=result.timestamp,
                    passed=False,
                    checks=result.checks,
                    summary=result.summary,
                    recommendations=[
                        "Automatic rollback recommended due to validation failures",
                        *result.recommendations,
                    ],
                    rollback_recommended=True,
                )
        except Exception as exc:  # noqa: BLE001
            logger.exception("post_validation_failed operation_id=%s", operation.id)
            return err("E_CONSISTENCY", f"Post-operation validation failed: {exc}")
        logger.info(
            "post_validation_completed operation_id=%s passed=%s rollback_recommended=%s",
            operation.id,
            result.passed,
            result.rollback_recommended,
        )
        return ok(result)

    def validate_cross_references(
        self,
        flag_key: str,
        remote: RemoteFlag | None,
        usages: UsageMap,
    ) -> Result[CheckResult]:
        if not flag_key:
            raise ValueError("flag key must be a non-empty string")
        return ok(self._cross_references(flag_key, remote, usages, detailed=True))

    def validate_data_integrity(
        self,
        flag_key: str,
        remote: RemoteFlag | None,
        usages: UsageMap,
    ) -> Result[CheckResult]:
        if not flag_key:
            raise ValueError("flag key must be a non-empty string")
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        used = bool(usages.get(flag_key))
        if remote is not None:
            if remote.key != flag_key:
                issues.append(
                    ConsistencyIssue(
                        type="data_corruption",
                        severity="critical",
                        message=f"Flag key mismatch: expected '{flag_key}', got '{remote.key}'",
                        resolution="Re-fetch the flag from the flag service",
                    )
                )
            if not used and not remote.archived:
                issues.append(
                    ConsistencyIssue(
                        type="state_mismatch",
                        severity="medium",
                        message=f"Flag '{flag_key}' is not used in code and should potentially be archived",
                        resolution="Consider archiving this flag",
                    )
                )
            if used and remote.archived:
                issues.append(
                    ConsistencyIssue(
                        type="state_mismatch",
                        severity="high",
                        message=f"Flag '{flag_key}' is archived but still referenced in code",
                        resolution="Unarchive the flag or remove code references",
                    )
                )
        elif used:
            issues.append(
                ConsistencyIssue(
                    type="reference_orphan",
                    severity="high",
                    message=f"Flag '{flag_key}' is referenced in code but does not exist remotely",
                    resolution="Create the flag or remove code references",
                )
            )
        return ok(_check("data_integrity", "Validate flag data integrity", issues, started))

    def generate_consistency_report(
        self,
        flag_keys: Sequence[str],
        remote_flags: Sequence[RemoteFlag],
        usages: UsageMap,
    ) -> Result[ConsistencyReport]:
        logger.info("consistency_report_started flags=%d", len(flag_keys))
        try:
            by_key = {flag.key: flag for flag in remote_flags}
            results = [_flag_consistency(key, by_key.get(key), usages) for key in flag_keys]
            critical = sum(
                1 for r in results for issue in r.issues if issue.severity in BLOCKING_SEVERITIES
            )
            warnings = sum(
                1 for r in results for issue in r.issues if issue.severity not in BLOCKING_SEVERITIES
            )
            consistent = sum(1 for r in results if r.is_consistent)
            inconsistent = len(results) - consistent
            recommendations: list[str] = []
            if inconsistent:
                recommendations.append(f"Review and resolve {inconsistent} inconsistent flags")
            if critical:
                recommendations.append(f"Prioritize resolving {critical} critical issues")
            if warnings > len(results) * 0.1:
                recommendations.append(
                    "Consider reviewing flag naming and usage patterns to reduce ambiguity"
                )
            report = ConsistencyReport(
                timestamp=datetime.now(timezone.utc).isoformat(),
                total_flags=len(flag_keys),
                consistent_flags=consistent,
                inconsistent_flags=inconsistent,
                critical_issues=critical,
                warnings=warnings,
                flag_results=results,
                recommendations=recommendations,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("consistency_report_failed")
            return err("E_CONSISTENCY", f"Consistency report generation failed: {exc}")
        logger.info(
            "consistency_report_completed flags=%d consistent=%d critical=%d",
            report.total_flags,
            report.consistent_flags,
            report.critical_issues,
        )
        return ok(report)

    def _flag_state(
        self,
        flag_key: str,
        remote: RemoteFlag | None,
        usages: UsageMap,
    ) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        used = bool(usages.get(flag_key))
        if used and remote is None:
            issues.append(
                ConsistencyIssue(
                    type="missing_flag",
                    severity="high",
                    message=f"Flag '{flag_key}' used in code but missing from the flag service",
                    resolution="Create the flag or remove it from code",
                )
            )
        if not used and remote is not None and not remote.archived:
            issues.append(
                ConsistencyIssue(
                    type="orphaned_flag",
                    severity="medium",
                    message=f"Flag '{flag_key}' exists in the flag service but is unused in code",
                    resolution="Consider archiving this flag",
                )
            )
        return _check("flag_state_validation", "Validate basic flag state consistency", issues, started)

    def _prerequisites(self, operation: CleanupOperation) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        failed = [
            check
            for check in operation.validation_checks
            if check.required and check.status == "failed"
        ]
        if failed:
            issues.append(
                ConsistencyIssue(
                    type="configuration_drift",
                    severity="high",
                    message=f"Operation has {len(failed)} failed prerequisite checks",
                    resolution="Resolve validation check failures before proceeding",
                )
            )
        if operation.type == "archive" and operation.risk_level == "critical":
            issues.append(
                ConsistencyIssue(
                    type="configuration_drift",
                    severity="medium",
                    message="Archive operation marked as critical risk; review carefully",
                    resolution="Verify the archive operation is safe to proceed",
                )
            )
        return _check(
            "operation_prerequisites",
            "Validate operation prerequisites and safety checks",
            issues,
            started,
        )

    def _cross_references(
        self,
        flag_key: str,
        remote: RemoteFlag | None,
        usages: UsageMap,
        detailed: bool = False,
    ) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        count = len(usages.get(flag_key, ()))
        if count and remote is None:
            issues.append(
                ConsistencyIssue(
                    type="missing_flag",
                    severity="high",
                    message=f"Flag '{flag_key}' is referenced {count} times in code but not found in the flag service",
                    resolution="Create the flag or remove references from code",
                )
            )
        if count and remote is not None and remote.archived:
            issues.append(
                ConsistencyIssue(
                    type="status_mismatch",
                    severity="high",
                    message=f"Archived flag '{flag_key}' still referenced {count} times in code",
                    resolution="Remove code references or unarchive the flag",
                )
            )
        if detailed and not count and remote is not None and not remote.archived:
            issues.append(
                ConsistencyIssue(
                    type="orphaned_flag",
                    severity="medium",
                    message=f"Flag '{flag_key}' exists in the flag service but has no references in code",
                    resolution="Consider archiving this flag or verify code analysis accuracy",
                )
            )
        return _check(
            "cross_reference_validation",
            "Validate cross-references between the flag service and codebase",
            issues,
            started,
            metadata={
                "code_usage_count": count,
                "flag_exists": remote is not None,
                "flag_archived": bool(remote and remote.archived),
            },
        )

    def _risk_assessment(self, operation: CleanupOperation) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        if operation.risk_level in BLOCKING_SEVERITIES:
            issues.append(
                ConsistencyIssue(
                    type="configuration_drift",
                    severity="medium",
                    message=f"Operation has {operation.risk_level} risk level; requires careful review",
                    resolution="Review operation details and ensure safety measures are in place",
                )
            )
            if not operation.rollback_info.supported:
                issues.append(
                    ConsistencyIssue(
                        type="configuration_drift",
                        severity="high",
                        message=f"{operation.risk_level.capitalize()}-risk operation without rollback capability",
                        resolution="Ensure rollback procedures exist for high-risk operations",
                    )
                )
        return _check(
            "risk_assessment_validation",
            "Validate operation risk assessment and safety measures",
            issues,
            started,
        )

    def _deep_validation(self, flag_key: str, remote: RemoteFlag | None) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        if remote is not None and self.client is not None:
            if not remote.environments:
                issues.append(
                    ConsistencyIssue(
                        type="configuration_drift",
                        severity="low",
                        message=f"Flag '{flag_key}' has no environment configurations",
                        resolution="Verify the flag is configured across environments",
                    )
                )
            for env_key in sorted(remote.environments):
                status = self.client.get_environment_status(flag_key, env_key)
                if not status.ok:
                    issues.append(
                        ConsistencyIssue(
                            type="configuration_drift",
                            severity="medium",
                            message=f"Deep validation failed for flag '{flag_key}' in '{env_key}': {status.error.message}",
                            resolution="Investigate the flag configuration in the flag service",
                        )
                    )
        return _check(
            "deep_validation",
            "Perform remote-side flag configuration validation",
            issues,
            started,
        )

    def _operation_result(self, result: OperationResult) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        if result.status == "failed":
            issues.append(
                ConsistencyIssue(
                    type="configuration_drift",
                    severity="high",
                    message=f"Operation failed: {result.message or result.error}",
                    resolution="Investigate and resolve the operation failure",
                )
            )
        if result.duration_ms > self.options.max_operation_ms:
            issues.append(
                ConsistencyIssue(
                    type="configuration_drift",
                    severity="low",
                    message=f"Operation took longer than expected: {result.duration_ms}ms",
                    resolution="Monitor operation performance",
                )
            )
        return _check("operation_result_validation", "Validate operation execution result", issues, started)

    def _state_transition(
        self,
        operation: CleanupOperation,
        pre_state: RemoteFlag | None,
        post_state: RemoteFlag | None,
    ) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        if operation.type == "archive":
            flipped = (
                pre_state is not None
                and not pre_state.archived
                and post_state is not None
                and post_state.archived
            )
            if not flipped:
                issues.append(
                    ConsistencyIssue(
                        type="status_mismatch",
                        severity="high",
                        message="Archive operation did not change flag status from active to archived",
                        resolution="Verify the archive operation was executed correctly",
                    )
                )
        elif operation.type == "enable":
            flipped = (
                pre_state is not None
                and pre_state.archived
                and post_state is not None
                and not post_state.archived
            )
            if not flipped:
                issues.append(
                    ConsistencyIssue(
                        type="status_mismatch",
                        severity="high",
                        message="Enable operation did not unarchive the flag",
                        resolution="Verify the enable operation was executed correctly",
                    )
                )
        return _check(
            "state_transition_validation",
            "Validate flag state transition after operation",
            issues,
            started,
        )

    def _data_integrity(
        self,
        flag_key: str,
        post_state: RemoteFlag | None,
        usages: UsageMap,
        usage_timestamp: str | None,
    ) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        used = bool(usages.get(flag_key))
        if used and post_state is None:
            issues.append(
                ConsistencyIssue(
                    type="missing_flag",
                    severity="high",
                    message=f"Flag '{flag_key}' referenced in code but missing from the flag service",
                    resolution="Restore the flag or remove references from code",
                )
            )
        if used and post_state is not None and post_state.archived:
            issues.append(
                ConsistencyIssue(
                    type="status_mismatch",
                    severity="high",
                    message=f"Flag '{flag_key}' is archived but still has code references",
                    resolution="Remove code references or restore the flag state",
                )
            )
        if usage_timestamp is not None:
            stamp = parse_timestamp(usage_timestamp)
            if stamp is None or stamp > datetime.now(timezone.utc):
                issues.append(
                    ConsistencyIssue(
                        type="configuration_drift",
                        severity="low",
                        message="Usage report timestamp is invalid or in the future",
                        resolution="Regenerate the usage report",
                    )
                )
        return _check(
            "data_integrity_validation",
            "Validate data integrity after operation",
            issues,
            started,
        )


def aggregate_checks(checks: list[CheckResult]) -> ConsistencyValidationResult:
    total = len(checks)
    passed_checks = sum(1 for check in checks if check.passed)
    failed = total - passed_checks
    issues = [issue for check in checks for issue in check.issues]
    critical = sum(1 for issue in issues if issue.severity in BLOCKING_SEVERITIES)
    warnings = len(issues) - critical

    recommendations: list[str] = []
    if critical:
        recommendations.append(f"Address {critical} critical consistency issues before proceeding")
    if warnings:
        recommendations.append(f"Review {warnings} warnings to improve flag management")
    if failed > total * 0.5:
        recommendations.append("High validation failure rate; consider reviewing the operation plan")

    return ConsistencyValidationResult(
        timestamp=datetime.now(timezone.utc).isoformat(),
        passed=critical == 0 and failed == 0,
        checks=checks,
        summary=ConsistencySummary(
            total_checks=total,
            passed_checks=passed_checks,
            failed_checks=failed,
            total_issues=len(issues),
            critical_issues=critical,
            warnings=warnings,
        ),
        recommendations=recommendations,
        rollback_recommended=critical > 0 or failed > total * 0.3,
    )


def _flag_consistency(key: str, remote: RemoteFlag | None, usages: UsageMap) -> FlagConsistency:
    used = bool(usages.get(key))
    issues: list[ConsistencyIssue] = []
    if remote is not None and not used and not remote.archived:
        issues.append(
            ConsistencyIssue(
                type="orphaned_flag",
                severity="medium",
                message=f"Flag '{key}' exists in the flag service but is not used in code",
                resolution="Consider archiving this flag",
            )
        )
    if used and remote is None:
        issues.append(
            ConsistencyIssue(
                type="missing_flag",
                severity="high",
                message=f"Flag '{key}' is used in code but does not exist in the flag service",
                resolution="Create the flag or remove it from code",
            )
        )
    if used and remote is not None and remote.archived:
        issues.append(
            ConsistencyIssue(
                type="status_mismatch",
                severity="high",
                message=f"Flag '{key}' is used in code but archived in the flag service",
                resolution="Unarchive the flag or remove it from code",
            )
        )
    return FlagConsistency(
        flag_key=key,
        is_consistent=_passed(issues),
        issues=issues,
        exists_remotely=remote is not None,
        used_in_code=used,
    )
