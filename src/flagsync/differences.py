"""Classify every flag key seen remotely or in code into one difference."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from flagsync.errors import Result, err, ok
from flagsync.models import (
    AnalysisResult,
    AnalysisSummary,
    FlagDifference,
    FlagUsage,
    RemoteFlag,
)

logger = logging.getLogger(__name__)

RECENT_DAYS = 7
STALE_DAYS = 30


def analyze_flag_differences(
    remote_flags: Sequence[RemoteFlag],
    usages: Mapping[str, Sequence[FlagUsage]],
    now: datetime | None = None,
) -> Result[AnalysisResult]:
    for flag in remote_flags:
        if not flag.key:
            raise ValueError("remote flag key must be a non-empty string")
    for key in usages:
        if not key:
            raise ValueError("usage map keys must be non-empty strings")
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    try:
        return ok(_analyze(remote_flags, usages, now))
    except Exception as exc:  # noqa: BLE001
        logger.exception("difference_analysis_failed")
        return err("E_ANALYSIS", f"Flag difference analysis failed: {exc}")


def _analyze(
    remote_flags: Sequence[RemoteFlag],
    usages: Mapping[str, Sequence[FlagUsage]],
    now: datetime,
) -> AnalysisResult:
    remote_by_key: dict[str, RemoteFlag] = {}
    for flag in remote_flags:
        remote_by_key.setdefault(flag.key, flag)
    ordered_keys = list(remote_by_key) + sorted(k for k in usages if k not in remote_by_key)

    differences = [
        classify_flag(key, remote_by_key.get(key), list(usages.get(key, ())), now)
        for key in ordered_keys
    ]
    counts = {
        "orphaned_in_optimizely": 0,
        "missing_in_optimizely": 0,
        "archived_but_used": 0,
        "active_but_unused": 0,
        "consistent": 0,
    }
    for difference in differences:
        counts[difference.type] += 1
    summary = AnalysisSummary(
        orphaned_flags=counts["orphaned_in_optimizely"],
        missing_flags=counts["missing_in_optimizely"],
        archived_but_used=counts["archived_but_used"],
        active_but_unused=counts["active_but_unused"],
        consistent_flags=counts["consistent"],
    )
    result = AnalysisResult(
        timestamp=now.isoformat(),
        total_remote_flags=len(remote_by_key),
        total_codebase_flags=sum(1 for key in usages if usages[key]),
        differences=differences,
        summary=summary,
    )
    logger.info(
        "difference_analysis_completed keys=%d orphaned=%d missing=%d archived_but_used=%d "
        "active_but_unused=%d consistent=%d",
        len(differences),
        summary.orphaned_flags,
        summary.missing_flags,
        summary.archived_but_used,
        summary.active_but_unused,
        summary.consistent_flags,
    )
    return result


def classify_flag(
    key: str,
    remote: RemoteFlag | None,
    usages: list[FlagUsage],
    now: datetime,
) -> FlagDifference:
    used = len(usages) > 0
    if remote is None:
        if used:
            return FlagDifference(
                flag_key=key,
                type="missing_in_optimizely",
                severity="high",
                risk_level="high",
                recommended_action="create_flag",
                description=f"Flag '{key}' is used in {len(usages)} place(s) but does not exist remotely",
                usages=usages,
            )
        return FlagDifference(
            flag_key=key,
            type="consistent",
            severity="low",
            risk_level="low",
            recommended_action="none",
            description=f"Flag '{key}' has no usages and no remote definition",
        )

    risk = risk_from_updated_time(remote.updated_time, now)
    if not remote.archived and not used:
        enabled = remote.enabled_environments()
        targeted = remote.targeted_environments()
        if not enabled and not targeted:
            return FlagDifference(
                flag_key=key,
                type="orphaned_in_optimizely",
                severity="medium",
                risk_level=risk,
                recommended_action="archive_flag",
                description=f"Flag '{key}' is active remotely but not referenced in code",
                remote_flag=remote,
            )
        return FlagDifference(
            flag_key=key,
            type="active_but_unused",
            severity="low",
            risk_level=risk,
            recommended_action="review_flag",
            description=_review_description(key, enabled, targeted),
            remote_flag=remote,
        )
    if remote.archived and used:
        return FlagDifference(
            flag_key=key,
            type="archived_but_used",
            severity="high",
            risk_level=risk,
            recommended_action="unarchive_flag",
            description=f"Flag '{key}' is archived remotely but still used in {len(usages)} place(s)",
            usages=usages,
            remote_flag=remote,
        )
    return FlagDifference(
        flag_key=key,
        type="consistent",
        severity="low",
        risk_level=risk,
        recommended_action="none",
        description=f"Flag '{key}' state matches its code usage",
        usages=usages,
        remote_flag=remote,
    )


def _review_description(key: str, enabled: list[str], targeted: list[str]) -> str:
    reasons = []
    if enabled:
        reasons.append(f"is enabled in {', '.join(enabled)}")
    if targeted:
        reasons.append(f"has targeting rules in {', '.join(targeted)}")
    return (
        f"Flag '{key}' is not referenced in code but {' and '.join(reasons)}; "
        "review before archiving"
    )


def risk_from_updated_time(updated_time: str | None, now: datetime) -> str:
    updated = parse_timestamp(updated_time)
    if updated is None:
        return "medium"
    age_days = (now - updated).total_seconds() / 86400
    if age_days <= RECENT_DAYS:
        return "high"
    if age_days <= STALE_DAYS:
        return "medium"
    return "low"


def parse_timestamp(value: str | None) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
