"""Experimental scope reduction for very large trees (opt-in, always reported)."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory names whose sources rarely gate production behaviour.
LOW_VALUE_DIRS = {
    "__mocks__",
    "__tests__",
    "docs",
    "example",
    "examples",
    "fixtures",
    "generated",
    "migrations",
    "spec",
    "specs",
    "stories",
    "test",
    "tests",
    "third_party",
    "vendor",
}


def smart_filter(
    files: list[Path],
    threshold: int,
    root: Path | None = None,
) -> tuple[list[Path], str | None]:
    """Drop source files under low-value directories once ``files`` exceeds ``threshold``.

    ``files`` are the source files the scan would read. Directory names are
    matched relative to ``root`` when given. Returns the kept files and a
    warning describing the reduction, or ``None`` when nothing was dropped.
    """
    if len(files) <= threshold:
        return files, None
    kept = [path for path in files if not _low_value(path, root)]
    if len(kept) == len(files):
        return files, None
    warning = (
        f"Smart filtering applied: scanned {len(kept)} of {len(files)} source files, "
        f"skipping test, fixture, vendored and generated directories; results may be incomplete"
    )
    logger.warning(
        "smart_filter_applied kept=%d source_files=%d threshold=%d", len(kept), len(files), threshold
    )
    return kept, warning


def _low_value(path: Path, root: Path | None) -> bool:
    relative = path.relative_to(root) if root is not None else path
    return any(part.lower() in LOW_VALUE_DIRS for part in relative.parent.parts)
