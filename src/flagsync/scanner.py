from __future__ import annotations

import functools
import logging
import os
import re
from pathlib import Path
from typing import Iterable

from flagsync.config import CACHE_DIR_NAME

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES = [
    ".git/**",
    ".hg/**",
    ".svn/**",
    "**/node_modules/**",
    "**/.venv/**",
    "**/__pycache__/**",
    "**/.pytest_cache/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    f"{CACHE_DIR_NAME}/**",
    "**/*.test.*",
    "**/*.spec.*",
    "**/*.md",
    "**/*.json",
    "**/*.lock",
    "**/*.min.js",
]


def collect_files(
    root: Path,
    exclude: Iterable[str] = (),
    include: Iterable[str] = (),
    max_file_size: int | None = None,
    use_default_excludes: bool = True,
) -> tuple[list[Path], list[str]]:
    """Walk ``root`` and return ``(sorted files, errors)``.

    Excluded directories are pruned as whole subtrees. Unreadable
    directories are logged, recorded and skipped.
    """
    root = Path(root).resolve()
    exclude_patterns = (DEFAULT_EXCLUDES if use_default_excludes else []) + list(exclude)
    include_patterns = list(include)
    errors: list[str] = []
    results: list[Path] = []

    def _on_error(exc: OSError) -> None:
        logger.warning("directory_unreadable path=%s error=%s", exc.filename, exc.strerror)
        errors.append(f"Failed to read directory {exc.filename}: {exc.strerror or exc}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        rel_dir = _normalize(os.path.relpath(dirpath, root))
        if rel_dir != "." and matches(rel_dir + "/", exclude_patterns):
            dirnames[:] = []
            continue
        dirnames.sort()
        for name in filenames:
            full_path = Path(dirpath) / name
            rel_path = _normalize(os.path.relpath(full_path, root))
            if matches(rel_path, exclude_patterns):
                continue
            if include_patterns and not matches(rel_path, include_patterns):
                continue
            if max_file_size is not None and _too_large(full_path, max_file_size):
                continue
            results.append(full_path)
    results.sort(key=lambda p: p.as_posix())
    return results, errors


def _too_large(path: Path, max_file_size: int) -> bool:
    try:
        return path.stat().st_size > max_file_size
    except OSError as exc:
        # Size unknown: keep the file.
        logger.debug("stat_failed path=%s error=%s", path, exc)
        return False


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


def matches(path: str, patterns: Iterable[str]) -> bool:
    path = _normalize(path)
    return any(glob_to_regex(pattern).match(path) for pattern in patterns)


@functools.lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob with ``**`` support into an anchored regex.

    ``**/`` matches zero or more directories, ``**`` anything, ``*`` and
    ``?`` never cross a ``/``.
    """
    pattern = _normalize(pattern)
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")
