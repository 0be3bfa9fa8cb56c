"""Configuration objects and environment loading."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from flagsync.languages import DEFAULT_LANGUAGES, validate_languages
from flagsync.models import RISK_LEVELS

CACHE_DIR_NAME = ".flagsync"
DEFAULT_CONCURRENCY = 10
DEFAULT_MIN_CONFIDENCE = 0.3
DEFAULT_SMART_FILTER_THRESHOLD = 50_000


@dataclass(frozen=True)
class CodeAnalysisConfig:
    workspace_root: Path
    exclude_patterns: tuple[str, ...] = ()
    include_patterns: tuple[str, ...] = ()
    languages: tuple[str, ...] = DEFAULT_LANGUAGES
    concurrency_limit: int = DEFAULT_CONCURRENCY
    max_file_size: int | None = None
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    smart_filter: bool = False
    smart_filter_threshold: int = DEFAULT_SMART_FILTER_THRESHOLD

    def __post_init__(self) -> None:
        validate_languages(self.languages)
        if self.concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {self.concurrency_limit}")
        if self.max_file_size is not None and self.max_file_size < 0:
            raise ValueError(f"max_file_size must be >= 0, got {self.max_file_size}")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be within [0, 1], got {self.min_confidence}")


@dataclass(frozen=True)
class SafetyChecks:
    require_confirmation: bool = True
    validate_dependencies: bool = True
    check_recent_usage: bool = True
    enforce_rollback_capability: bool = True


@dataclass(frozen=True)
class CleanupPlanOptions:
    max_flags_per_plan: int = 100
    risk_tolerance: str = "medium"  # "low", "medium" or "high"
    enable_preview: bool = True
    safety_checks: SafetyChecks = field(default_factory=SafetyChecks)

    def __post_init__(self) -> None:
        if self.max_flags_per_plan < 0:
            raise ValueError(f"max_flags_per_plan must be >= 0, got {self.max_flags_per_plan}")
        if self.risk_tolerance not in RISK_LEVELS[:3]:
            raise ValueError(
                f"risk_tolerance must be one of low, medium, high; got {self.risk_tolerance!r}"
            )


@dataclass(frozen=True)
class ConfirmationOptions:
    required: bool = True
    interactive: bool = False
    timeout_seconds: float = 300.0
    explicit_confirmation_risks: tuple[str, ...] = ("high", "critical")


@dataclass(frozen=True)
class ConsistencyOptions:
    deep_validation: bool = False
    enable_auto_rollback: bool = True
    max_operation_ms: int = 60_000


def _split(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(";") if part.strip())


def _int_env(env: Mapping[str, str], name: str) -> int | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_analysis_config(
    root: Path,
    env: Mapping[str, str] | None = None,
) -> CodeAnalysisConfig:
    """Build a CodeAnalysisConfig from ``FLAGSYNC_*`` environment variables.

    List values are semicolon-separated. Invalid values raise ValueError
    rather than falling back to defaults.
    """
    env = os.environ if env is None else env
    languages = _split(env.get("FLAGSYNC_LANGUAGES", "")) or DEFAULT_LANGUAGES
    concurrency = _int_env(env, "FLAGSYNC_CONCURRENCY")
    return CodeAnalysisConfig(
        workspace_root=Path(root).resolve(),
        exclude_patterns=_split(env.get("FLAGSYNC_EXCLUDE", "")),
        include_patterns=_split(env.get("FLAGSYNC_INCLUDE", "")),
        languages=languages,
        concurrency_limit=DEFAULT_CONCURRENCY if concurrency is None else concurrency,
        max_file_size=_int_env(env, "FLAGSYNC_MAX_FILE_SIZE"),
    )
