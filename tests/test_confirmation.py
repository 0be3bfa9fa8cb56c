from __future__ import annotations

import threading

from flagsync.config import CleanupPlanOptions, ConfirmationOptions
from flagsync.differences import analyze_flag_differences
from flagsync.confirmation import request_confirmation
from flagsync.planner import build_cleanup_plan


def _plan(flags, now):
    analysis = analyze_flag_differences(flags, {}, now=now).unwrap()
    return build_cleanup_plan(analysis, CleanupPlanOptions()).unwrap()


def test_safe_plan_is_confirmed_automatically(make_flag, now) -> None:
    plan = _plan([make_flag("old", age_days=90)], now)

    result = request_confirmation(plan, ConfirmationOptions(required=False))

    assert result.confirmed
    assert result.method == "automatic"


def test_risky_plan_rejected_when_not_interactive(make_flag, now) -> None:
    plan = _plan([make_flag("fresh", age_days=1)], now)

    result = request_confirmation(plan, ConfirmationOptions(interactive=False))

    assert not result.confirmed
    assert result.method == "automatic"


def test_interactive_yes(make_flag, now) -> None:
    plan = _plan([make_flag("fresh", age_days=1)], now)
    questions: list[str] = []

    def prompt(question: str) -> str:
        questions.append(question)
        return "yes"

    result = request_confirmation(plan, ConfirmationOptions(interactive=True, timeout_seconds=5), prompt)

    assert result.confirmed
    assert result.method == "interactive"
    assert plan.id in questions[0]


def test_interactive_wait_times_out(make_flag, now) -> None:
    plan = _plan([make_flag("fresh", age_days=1)], now)
    release = threading.Event()

    def never_answers(question: str) -> str:
        release.wait(5)
        return "yes"

    try:
        result = request_confirmation(
            plan,
            ConfirmationOptions(interactive=True, timeout_seconds=0.05),
            never_answers,
        )
    finally:
        release.set()

    assert not result.confirmed
    assert result.method == "timeout"
