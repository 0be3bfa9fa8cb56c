from __future__ import annotations

import json
import os
from pathlib import Path

from flagsync.cache import CACHE_VERSION, CachedScan, FileIndexCache, snapshot_files
from flagsync.models import FlagUsage


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def _store(tmp_path: Path, files: list[Path]) -> FileIndexCache:
    cache = FileIndexCache(tmp_path)
    usages = {"feature_a": [FlagUsage(file="a.ts", line=1, context="x")]}
    cache.store(snapshot_files(tmp_path, files), ["feature_a"], CachedScan(usages, []))
    return cache


def test_round_trip_hits_when_tree_unchanged(tmp_path: Path) -> None:
    _write(tmp_path / "a.ts", "feature_a")
    files = [tmp_path / "a.ts"]
    cache = _store(tmp_path, files)

    hit = cache.lookup(snapshot_files(tmp_path, files), ["feature_a"])

    assert hit is not None
    assert hit.flag_usages["feature_a"][0].line == 1
    assert (tmp_path / ".flagsync" / "file-index.json").exists()


def test_modified_time_change_misses(tmp_path: Path) -> None:
    _write(tmp_path / "a.ts", "feature_a")
    files = [tmp_path / "a.ts"]
    cache = _store(tmp_path, files)
    stat = (tmp_path / "a.ts").stat()
    os.utime(tmp_path / "a.ts", (stat.st_atime, stat.st_mtime + 10))

    assert cache.lookup(snapshot_files(tmp_path, files), ["feature_a"]) is None


def test_file_count_and_key_changes_miss(tmp_path: Path) -> None:
    _write(tmp_path / "a.ts", "feature_a")
    _write(tmp_path / "b.ts", "feature_b")
    cache = _store(tmp_path, [tmp_path / "a.ts"])

    both = snapshot_files(tmp_path, [tmp_path / "a.ts", tmp_path / "b.ts"])
    assert cache.lookup(both, ["feature_a"]) is None
    assert cache.lookup(snapshot_files(tmp_path, [tmp_path / "a.ts"]), ["feature_b"]) is None


def test_version_mismatch_invalidates(tmp_path: Path) -> None:
    _write(tmp_path / "a.ts", "feature_a")
    files = [tmp_path / "a.ts"]
    cache = _store(tmp_path, files)
    data = json.loads(cache.path.read_text())
    data["version"] = CACHE_VERSION + 1
    cache.path.write_text(json.dumps(data))

    assert cache.lookup(snapshot_files(tmp_path, files), ["feature_a"]) is None


def test_corrupt_cache_is_ignored(tmp_path: Path) -> None:
    _write(tmp_path / ".flagsync" / "file-index.json", "{not json")
    cache = FileIndexCache(tmp_path)

    assert cache.load() is None
