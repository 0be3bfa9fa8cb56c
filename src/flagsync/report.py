from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from flagsync.models import CleanupPlan, ScanResult

PLAN_JSON = "flagsync_plan.json"
PLAN_MARKDOWN = "flagsync_plan.md"


def write_plan(out_dir: Path, plan: CleanupPlan, scan: ScanResult | None = None) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    json_path = out_dir / PLAN_JSON
    payload = asdict(plan)
    if scan is not None:
        payload["scan"] = {
            "total_files": scan.total_files,
            "processed_files": scan.processed_files,
            "errors": scan.errors,
            "warnings": scan.warnings,
            "cache_used": scan.cache_used,
            "processing_time_ms": scan.processing_time_ms,
        }
    json_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
    written = [json_path]
    if plan.options.get("enable_preview", True):
        md_path = out_dir / PLAN_MARKDOWN
        md_path.write_text(render_plan_markdown(plan, scan))
        written.append(md_path)
    return written


def render_plan_markdown(plan: CleanupPlan, scan: ScanResult | None = None) -> str:
    summary = plan.analysis.summary
    validation = plan.validation
    lines = [
        "# Flag Cleanup Plan",
        "",
        f"Plan: {plan.id}",
        f"Generated: {plan.timestamp}",
        f"Status: {plan.status}",
        f"Operations: {len(plan.operations)}",
        f"Overall risk: {plan.metadata.risk_assessment.overall_risk}",
        f"Estimated duration: {plan.metadata.estimated_duration_ms / 1000:.1f}s",
        f"Valid: {'yes' if validation.is_valid else 'no'}",
        "",
        "## Analysis",
        f"- Remote flags: {plan.analysis.total_remote_flags}",
        f"- Flags referenced in code: {plan.analysis.total_codebase_flags}",
        f"- Orphaned: {summary.orphaned_flags}",
        f"- Missing remotely: {summary.missing_flags}",
        f"- Archived but used: {summary.archived_but_used}",
        f"- Active but unused: {summary.active_but_unused}",
        f"- Consistent: {summary.consistent_flags}",
    ]
    if scan is not None:
        lines.append(f"- Files scanned: {scan.processed_files}/{scan.total_files}")
        if scan.cache_used:
            lines.append("- Results served from file-index cache")
        for warning in scan.warnings:
            lines.append(f"- Warning: {warning}")

    lines.append("")
    lines.append("## Execution phases")
    by_id = {op.id: op for op in plan.operations}
    for phase in plan.execution_order.phases:
        lines.append(f"### {phase.name} ({len(phase.operation_ids)})")
        if not phase.operation_ids:
            lines.append("- (none)")
        for op_id in phase.operation_ids:
            op = by_id[op_id]
            rollback = "rollback: yes" if op.rollback_info.supported else "rollback: no"
            lines.append(f"- `{op.flag_key}` {op.type} ({rollback}) - {op.reason}")
        lines.append("")

    for title, items in (
        ("Errors", validation.errors),
        ("Warnings", validation.warnings),
        ("Recommendations", plan.metadata.risk_assessment.recommendations),
    ):
        if not items:
            continue
        lines.append(f"## {title}")
        for item in items:
            lines.append(f"- {item}")
        lines.append("")

    review = [d for d in plan.analysis.differences if d.recommended_action == "review_flag"]
    if review:
        lines.append("## Needs review")
        for difference in review:
            lines.append(f"- `{difference.flag_key}`: {difference.description}")
        lines.append("")
    return "\n".join(lines)
