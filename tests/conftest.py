from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from flagsync.models import FlagUsage, RemoteFlag

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_flag() -> Callable[..., RemoteFlag]:
    def _make(
        key: str,
        archived: bool = False,
        age_days: float | None = 90,
        **extra: Any,
    ) -> RemoteFlag:
        updated = None if age_days is None else (NOW - timedelta(days=age_days)).isoformat()
        return RemoteFlag(key=key, archived=archived, updated_time=updated, **extra)

    return _make


@pytest.fixture
def usage() -> Callable[..., FlagUsage]:
    def _make(file: str = "src/app.ts", line: int = 1, context: str = "") -> FlagUsage:
        return FlagUsage(file=file, line=line, context=context)

    return _make
