from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Callable

from flagsync.config import ConfirmationOptions
from flagsync.models import CleanupPlan, ConfirmationResult, risk_rank

logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]


def request_confirmation(
    plan: CleanupPlan,
    options: ConfirmationOptions,
    prompt: Prompt | None = None,
) -> ConfirmationResult:
    """Gate execution of ``plan`` on its riskiest operations.

    The interactive wait never outlives ``options.timeout_seconds``.
    """
    explicit = [op for op in plan.operations if op.risk_level in options.explicit_confirmation_risks]
    if not options.required and not explicit:
        return _result(True, "automatic", "Confirmation not required")
    if explicit and not options.interactive:
        logger.warning(
            "confirmation_rejected plan_id=%s reason=non_interactive risky_operations=%d",
            plan.id,
            len(explicit),
        )
        return _result(
            False,
            "automatic",
            f"{len(explicit)} operation(s) need explicit confirmation and interactive mode is off",
        )
    if not options.interactive:
        return _result(True, "automatic", "No operation requires explicit confirmation")

    question = _question(plan, len(explicit))
    answer = _ask_with_timeout(prompt or input, question, options.timeout_seconds)
    if answer is None:
        logger.warning("confirmation_timeout plan_id=%s timeout_s=%s", plan.id, options.timeout_seconds)
        return _result(False, "timeout", f"No answer within {options.timeout_seconds}s")
    confirmed = answer.strip().lower() in {"y", "yes"}
    logger.info("confirmation_answered plan_id=%s confirmed=%s", plan.id, confirmed)
    return _result(confirmed, "interactive", f"Answer: {answer.strip()!r}")


def _question(plan: CleanupPlan, explicit_count: int) -> str:
    overall = max((op.risk_level for op in plan.operations), key=risk_rank, default="low")
    return (
        f"Plan {plan.id} has {len(plan.operations)} operation(s), overall risk {overall}, "
        f"{explicit_count} needing explicit confirmation. Proceed? [y/N] "
    )


def _ask_with_timeout(prompt: Prompt, question: str, timeout: float) -> str | None:
    answers: queue.Queue[str] = queue.Queue(maxsize=1)

    def _worker() -> None:
        try:
            answers.put(prompt(question))
        except (EOFError, OSError):
            answers.put("")

    threading.Thread(target=_worker, name="flagsync-confirm", daemon=True).start()
    try:
        return answers.get(timeout=timeout)
    except queue.Empty:
        return None


def _result(confirmed: bool, method: str, notes: str) -> ConfirmationResult:
    return ConfirmationResult(
        confirmed=confirmed,
        method=method,
        timestamp=datetime.now(timezone.utc).isoformat(),
        notes=notes,
    )
