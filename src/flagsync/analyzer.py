from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from flagsync.cache import CachedScan, FileIndexCache, snapshot_files
from flagsync.concurrency import run_in_batches
from flagsync.config import CodeAnalysisConfig
from flagsync.errors import Result, err, ok
from flagsync.experimental.smart_filter import smart_filter
from flagsync.extractor import (
    filter_references,
    find_usages_in_text,
    key_pattern,
    read_source,
    references_in_text,
)
from flagsync.languages import LanguageSpec, language_for_path
from flagsync.models import FlagReference, FlagUsage, ScanResult
from flagsync.scanner import collect_files

logger = logging.getLogger(__name__)


@dataclass
class _FileScan:
    usages: dict[str, list[FlagUsage]] = field(default_factory=dict)
    references: list[FlagReference] = field(default_factory=list)
    error: str | None = None


def scan_codebase(
    config: CodeAnalysisConfig,
    flag_keys: Iterable[str],
    use_cache: bool = True,
) -> Result[ScanResult]:
    """Scan the workspace for flag usages and pattern-based references."""
    keys = sorted(set(flag_keys))
    for key in keys:
        key_pattern(key)
    started = time.monotonic()
    root = Path(config.workspace_root).resolve()
    try:
        return ok(_scan(config, root, keys, use_cache, started))
    except Exception as exc:  # noqa: BLE001
        logger.exception("scan_failed root=%s", root)
        return err("E_SCAN", f"Codebase scan failed: {exc}", {"root": str(root)})


def _scan(
    config: CodeAnalysisConfig,
    root: Path,
    keys: list[str],
    use_cache: bool,
    started: float,
) -> ScanResult:
    if not root.is_dir():
        raise FileNotFoundError(f"Workspace root is not a directory: {root}")
    logger.info("scan_started root=%s flag_keys=%d", root, len(keys))
    files, errors = collect_files(
        root,
        exclude=config.exclude_patterns,
        include=config.include_patterns,
        max_file_size=config.max_file_size,
    )
    warnings: list[str] = []
    total_files = len(files)

    targets: list[tuple[Path, LanguageSpec]] = []
    for path in files:
        language = language_for_path(path, config.languages)
        if language is not None:
            targets.append((path, language))
    if config.smart_filter:
        kept, warning = smart_filter(
            [path for path, _ in targets], config.smart_filter_threshold, root
        )
        if warning:
            warnings.append(warning)
            wanted = set(kept)
            targets = [target for target in targets if target[0] in wanted]

    cache = FileIndexCache(root)
    entries = snapshot_files(root, [path for path, _ in targets])
    if use_cache:
        cached = cache.lookup(entries, keys)
        if cached is not None:
            return ScanResult(
                total_files=total_files,
                processed_files=len(targets),
                flag_references=filter_references(cached.flag_references, config.min_confidence),
                flag_usages=cached.flag_usages,
                errors=errors,
                warnings=warnings,
                processing_time_ms=_elapsed_ms(started),
                cache_used=True,
            )

    def _scan_one(target: tuple[Path, LanguageSpec]) -> _FileScan:
        path, language = target
        rel = path.relative_to(root).as_posix()
        try:
            text = read_source(path)
        except OSError as exc:
            logger.warning("file_unreadable path=%s error=%s", rel, exc)
            return _FileScan(error=f"Failed to read file {rel}: {exc}")
        return _FileScan(
            usages=find_usages_in_text(text, keys, language, rel),
            references=references_in_text(text, language, rel),
        )

    scans = run_in_batches(
        targets,
        _scan_one,
        config.concurrency_limit,
        on_progress=lambda done, total: logger.debug("scan_progress done=%d total=%d", done, total),
    )

    # Merge in sorted file order so completion order never shows up in results.
    usages: dict[str, list[FlagUsage]] = {}
    references: list[FlagReference] = []
    processed = 0
    for scan in scans:
        if scan.error is not None:
            errors.append(scan.error)
            continue
        processed += 1
        for key, found in scan.usages.items():
            usages.setdefault(key, []).extend(found)
        references.extend(scan.references)
    flag_usages = {key: usages[key] for key in sorted(usages)}

    if use_cache and processed == len(scans):
        cache.store(entries, keys, CachedScan(flag_usages=flag_usages, flag_references=references))
    references = filter_references(references, config.min_confidence)

    result = ScanResult(
        total_files=total_files,
        processed_files=processed,
        flag_references=references,
        flag_usages=flag_usages,
        errors=errors,
        warnings=warnings,
        processing_time_ms=_elapsed_ms(started),
        cache_used=False,
    )
    logger.info(
        "scan_completed files=%d processed=%d flags_found=%d references=%d errors=%d duration_ms=%d",
        result.total_files,
        result.processed_files,
        len(flag_usages),
        len(references),
        len(errors),
        result.processing_time_ms,
    )
    return result


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
