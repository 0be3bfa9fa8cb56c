from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

RISK_LEVELS = ("low", "medium", "high", "critical")
PHASE_NAMES = {
    "low": "low_risk_operations",
    "medium": "medium_risk_operations",
    "high": "high_risk_operations",
    "critical": "critical_risk_operations",
}
BLOCKING_SEVERITIES = frozenset({"high", "critical"})


def risk_rank(level: str) -> int:
    try:
        return RISK_LEVELS.index(level)
    except ValueError:
        raise ValueError(f"Unknown risk level: {level!r}") from None


@dataclass(frozen=True)
class FlagUsage:
    file: str
    line: int
    context: str


@dataclass(frozen=True)
class FlagReference:
    flag: str
    file: str
    line: int
    column: int
    context: str
    confidence: float
    pattern: str
    language: str


@dataclass(frozen=True)
class ScanResult:
    total_files: int
    processed_files: int
    flag_references: list[FlagReference]
    flag_usages: dict[str, list[FlagUsage]]
    errors: list[str]
    warnings: list[str]
    processing_time_ms: int
    cache_used: bool = False


@dataclass(frozen=True)
class RemoteFlag:
    key: str
    archived: bool = False
    updated_time: str | None = None
    name: str = ""
    description: str = ""
    environments: dict[str, dict[str, Any]] = field(default_factory=dict)

    def enabled_environments(self) -> list[str]:
        return sorted(
            env
            for env, state in self.environments.items()
            if isinstance(state, dict) and state.get("enabled") is True
        )

    def targeted_environments(self) -> list[str]:
        """Environments carrying rollout or targeting rules."""
        return sorted(
            env
            for env, state in self.environments.items()
            if isinstance(state, dict) and _has_rules(state)
        )

    def has_targeting_rules(self) -> bool:
        return bool(self.targeted_environments())


def _has_rules(state: dict[str, Any]) -> bool:
    if state.get("has_targeting_rules") is True or state.get("hasTargetingRules") is True:
        return True
    rules = state.get("rollout_rules", state.get("rolloutRules"))
    return isinstance(rules, list) and len(rules) > 0


@dataclass(frozen=True)
class FlagDifference:
    flag_key: str
    type: str  # orphaned_in_optimizely, archived_but_used, missing_in_optimizely, ...
    severity: str
    risk_level: str
    recommended_action: str  # archive_flag, unarchive_flag, create_flag, review_flag, none
    description: str
    usages: list[FlagUsage] = field(default_factory=list)
    remote_flag: RemoteFlag | None = None


@dataclass(frozen=True)
class AnalysisSummary:
    orphaned_flags: int = 0
    missing_flags: int = 0
    archived_but_used: int = 0
    active_but_unused: int = 0
    consistent_flags: int = 0

    def total(self) -> int:
        return (
            self.orphaned_flags
            + self.missing_flags
            + self.archived_but_used
            + self.active_but_unused
            + self.consistent_flags
        )


@dataclass(frozen=True)
class AnalysisResult:
    timestamp: str
    total_remote_flags: int
    total_codebase_flags: int
    differences: list[FlagDifference]
    summary: AnalysisSummary


@dataclass(frozen=True)
class ValidationCheck:
    id: str
    description: str
    required: bool = True
    status: str = "pending"  # "pending", "passed" or "failed"


@dataclass(frozen=True)
class RollbackInfo:
    supported: bool
    previous_state: dict[str, Any] = field(default_factory=dict)
    instructions: str = ""


@dataclass(frozen=True)
class OperationContext:
    current_flag: RemoteFlag | None
    code_usages: list[FlagUsage] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CleanupOperation:
    id: str
    type: str  # "archive", "enable", "disable", "update" or "no_action"
    flag_key: str
    risk_level: str
    reason: str
    context: OperationContext
    validation_checks: list[ValidationCheck] = field(default_factory=list)
    rollback_info: RollbackInfo = field(default_factory=lambda: RollbackInfo(supported=False))


@dataclass(frozen=True)
class ExecutionPhase:
    name: str
    operation_ids: list[str]


@dataclass(frozen=True)
class ExecutionOrder:
    strategy: str
    phases: list[ExecutionPhase]
    dependencies: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class RiskAssessment:
    overall_risk: str
    high_risk_operations: int
    potential_impact: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlanValidation:
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    info: list[str]
    risk_assessment: RiskAssessment


@dataclass(frozen=True)
class PlanMetadata:
    estimated_duration_ms: int
    risk_assessment: RiskAssessment
    dependencies: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CleanupPlan:
    id: str
    timestamp: str
    status: str  # "draft", "in_progress", "completed", "failed" or "rolled_back"
    analysis: AnalysisResult
    operations: list[CleanupOperation]
    execution_order: ExecutionOrder
    options: dict[str, Any]
    validation: PlanValidation
    metadata: PlanMetadata


@dataclass(frozen=True)
class ConsistencyIssue:
    type: str  # missing_flag, orphaned_flag, status_mismatch, configuration_drift
    severity: str
    message: str
    resolution: str


@dataclass(frozen=True)
class CheckResult:
    passed: bool
    check_id: str
    description: str
    issues: list[ConsistencyIssue]
    duration_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsistencySummary:
    total_checks: int
    passed_checks: int
    failed_checks: int
    total_issues: int
    critical_issues: int
    warnings: int


@dataclass(frozen=True)
class ConsistencyValidationResult:
    timestamp: str
    passed: bool
    checks: list[CheckResult]
    summary: ConsistencySummary
    recommendations: list[str]
    rollback_recommended: bool


@dataclass(frozen=True)
class FlagConsistency:
    flag_key: str
    is_consistent: bool
    issues: list[ConsistencyIssue]
    exists_remotely: bool
    used_in_code: bool


@dataclass(frozen=True)
class ConsistencyReport:
    timestamp: str
    total_flags: int
    consistent_flags: int
    inconsistent_flags: int
    critical_issues: int
    warnings: int
    flag_results: list[FlagConsistency]
    recommendations: list[str]


@dataclass(frozen=True)
class OperationResult:
    operation_id: str
    status: str  # "completed", "failed" or "skipped"
    message: str = ""
    duration_ms: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ConfirmationResult:
    confirmed: bool
    method: str  # "automatic", "interactive" or "timeout"
    timestamp: str
    notes: str = ""
