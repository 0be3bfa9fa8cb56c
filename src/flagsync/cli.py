from __future__ import annotations

import argparse
import dataclasses
import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

from flagsync import __version__
from flagsync.config import (
    CleanupPlanOptions,
    ConfirmationOptions,
    ConsistencyOptions,
    load_analysis_config,
)
from flagsync.flag_service import (
    FlagServiceClient,
    StaticFlagService,
    find_flag,
    load_remote_flags,
)
from flagsync.models import CleanupPlan, FlagUsage, OperationResult, RemoteFlag

logger = logging.getLogger(__name__)

APPLY_REPORT = "flagsync_apply.md"


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flagsync",
        description=(
            "Reconcile remote feature flags with code references and write a "
            "risk-ordered cleanup plan. Apply mode requires --yes confirmation."
        ),
    )
    parser.add_argument("--path", default=".", help="Workspace root to scan")
    parser.add_argument(
        "--flags-file",
        required=True,
        help="JSON export of remote flags (list or {'items': [...]})",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Dry-run (default)")
    mode.add_argument("--apply", action="store_true", help="Archive orphaned flags")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm apply mode (required with --apply)",
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Prompt before applying operations that need explicit confirmation",
    )
    parser.add_argument(
        "--confirm-timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for an interactive answer",
    )
    parser.add_argument("--max-flags", type=int, default=100, help="Maximum operations per plan")
    parser.add_argument(
        "--risk-tolerance",
        choices=["low", "medium", "high"],
        default="medium",
        help="Risk above this level escalates warnings",
    )
    parser.add_argument(
        "--include",
        action="append",
        default=[],
        help="Glob to include (repeatable, relative to --path)",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Glob to exclude (repeatable, relative to --path)",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Files scanned in parallel")
    parser.add_argument("--max-file-size", type=int, default=None, help="Skip files above N bytes")
    parser.add_argument("--no-cache", action="store_true", help="Ignore the file-index cache")
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Where plan files are written (defaults to --path)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = Path(args.path).resolve()
    if not root.exists() or not root.is_dir():
        raise SystemExit(f"Path does not exist or is not a directory: {root}")
    if args.apply and not args.yes:
        raise SystemExit("Refusing to apply without --yes confirmation.")

    from flagsync.analyzer import scan_codebase
    from flagsync.differences import analyze_flag_differences
    from flagsync.planner import build_cleanup_plan
    from flagsync.report import write_plan

    try:
        config = load_analysis_config(root)
        overrides = {}
        if args.include:
            overrides["include_patterns"] = config.include_patterns + tuple(args.include)
        if args.exclude:
            overrides["exclude_patterns"] = config.exclude_patterns + tuple(args.exclude)
        if args.concurrency is not None:
            overrides["concurrency_limit"] = args.concurrency
        if args.max_file_size is not None:
            overrides["max_file_size"] = args.max_file_size
        config = dataclasses.replace(config, **overrides)
        options = CleanupPlanOptions(
            max_flags_per_plan=args.max_flags,
            risk_tolerance=args.risk_tolerance,
        )
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from None

    client = StaticFlagService(Path(args.flags_file))
    snapshot = load_remote_flags(client)
    if not snapshot.ok:
        print(f"Could not load remote flags: {snapshot.error}")
        return 1
    remote_flags = snapshot.unwrap().flags

    scan = scan_codebase(config, [flag.key for flag in remote_flags], use_cache=not args.no_cache)
    if not scan.ok:
        print(f"Scan failed: {scan.error}")
        return 1
    scan_result = scan.unwrap()

    analysis = analyze_flag_differences(remote_flags, scan_result.flag_usages)
    if not analysis.ok:
        print(f"Analysis failed: {analysis.error}")
        return 1
    built = build_cleanup_plan(analysis.unwrap(), options)
    if not built.ok:
        print(f"Planning failed: {built.error}")
        return 1
    plan = built.unwrap()

    out_dir = Path(args.output_dir).resolve() if args.output_dir else root
    write_plan(out_dir, plan, scan_result)

    if not plan.validation.is_valid:
        print(f"Plan is invalid ({len(plan.validation.errors)} error(s)). Plans written to {out_dir}")
        for error in plan.validation.errors:
            print(f"- {error}")
        return 1

    if not args.apply:
        print(f"Dry-run complete. Plans written to {out_dir}")
        return 0

    from flagsync.confirmation import request_confirmation

    confirmation = request_confirmation(
        plan,
        ConfirmationOptions(interactive=args.interactive, timeout_seconds=args.confirm_timeout),
    )
    if not confirmation.confirmed:
        print(f"Apply not confirmed ({confirmation.method}): {confirmation.notes}")
        return 1

    results = apply_plan(client, plan, scan_result.flag_usages)
    report_path = out_dir / APPLY_REPORT
    report_path.write_text(_render_apply_report(plan, results))
    failed = [result for result in results if result.status == "failed"]
    print(
        f"Applied plan {plan.id}: "
        f"{sum(1 for r in results if r.status == 'completed')} archived, "
        f"{len(failed)} failed. Report written to {report_path}"
    )
    return 1 if failed else 0


def apply_plan(
    client: FlagServiceClient,
    plan: CleanupPlan,
    usages: Mapping[str, Sequence[FlagUsage]],
    consistency: ConsistencyOptions | None = None,
) -> list[OperationResult]:
    """Archive the plan's archive operations in phase order.

    Every archival is confirmed by re-reading the flag; a post-operation
    check that recommends rollback unarchives the flag again.
    """
    from flagsync.consistency import ConsistencyValidator

    validator = ConsistencyValidator(client, consistency)
    results: list[OperationResult] = []
    for op in plan.operations:
        if op.type != "archive":
            results.append(
                OperationResult(
                    operation_id=op.id,
                    status="skipped",
                    message=f"{op.type} operations need manual action",
                )
            )
            continue
        started = time.monotonic()
        pre_state = _read_flag(client, op.flag_key)
        if pre_state is None:
            results.append(
                OperationResult(
                    operation_id=op.id,
                    status="failed",
                    message=f"Flag state unknown for '{op.flag_key}'; not archived",
                )
            )
            continue
        pre = validator.validate_pre_operation(op, pre_state, usages)
        if not pre.ok or not pre.unwrap().passed:
            results.append(
                OperationResult(
                    operation_id=op.id,
                    status="skipped",
                    message="Pre-operation consistency checks did not pass",
                    error=str(pre.error) if pre.error else None,
                )
            )
            continue

        archived = client.archive_flags([op.flag_key])
        post_state = _read_flag(client, op.flag_key)
        confirmed = post_state is not None and post_state.archived
        if not archived.ok:
            message = f"Archive call failed: {archived.error}"
        elif not confirmed:
            message = "Archive not confirmed by a follow-up read"
        else:
            message = f"Archived '{op.flag_key}'"
        result = OperationResult(
            operation_id=op.id,
            status="completed" if archived.ok and confirmed else "failed",
            message=message,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=str(archived.error) if archived.error else None,
        )

        post = validator.validate_post_operation(
            op,
            result,
            pre_state,
            post_state,
            usages,
            usage_timestamp=plan.analysis.timestamp,
        )
        if post.ok and post.unwrap().rollback_recommended and confirmed:
            result = _roll_back(client, op.flag_key, result)
        logger.info(
            "operation_finished operation_id=%s flag_key=%s status=%s",
            op.id,
            op.flag_key,
            result.status,
        )
        results.append(result)
    return results


def _roll_back(client: FlagServiceClient, key: str, result: OperationResult) -> OperationResult:
    logger.warning("rollback_started operation_id=%s flag_key=%s", result.operation_id, key)
    restored = client.unarchive_flags([key])
    after = _read_flag(client, key)
    if restored.ok and after is not None and not after.archived:
        message = f"Archived '{key}' then rolled back after failed checks"
        error = None
    else:
        reason = restored.error if not restored.ok else "flag still archived or unreadable"
        message = f"Archived '{key}'; rollback after failed checks did not take effect ({reason})"
        error = str(reason)
        logger.error(
            "rollback_failed operation_id=%s flag_key=%s reason=%s", result.operation_id, key, reason
        )
    return dataclasses.replace(result, status="failed", message=message, error=error)


def _read_flag(client: FlagServiceClient, key: str) -> RemoteFlag | None:
    listed = client.list_flags()
    if not listed.ok:
        logger.warning("flag_read_failed flag_key=%s error=%s", key, listed.error)
        return None
    return find_flag(listed.unwrap(), key)


def _render_apply_report(plan: CleanupPlan, results: list[OperationResult]) -> str:
    by_id = {op.id: op for op in plan.operations}
    lines = [
        "# Flag Cleanup Applied",
        "",
        "Review this file; archived flags can be restored by unarchiving them.",
        "",
        f"Timestamp: {datetime.now(timezone.utc).isoformat()}",
        f"Plan: {plan.id}",
        "",
        "## Operations",
    ]
    if not results:
        lines.append("- (none)")
    for result in results:
        op = by_id[result.operation_id]
        lines.append(f"- `{op.flag_key}` {op.type}: {result.status} ({result.message})")
        if result.status == "completed" and op.rollback_info.supported:
            lines.append(f"  - Undo: {op.rollback_info.instructions}")
    lines.append("")
    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
