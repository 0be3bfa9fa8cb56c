from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flagsync.config import CACHE_DIR_NAME
from flagsync.models import FlagReference, FlagUsage

logger = logging.getLogger(__name__)

CACHE_VERSION = 2
CACHE_FILE_NAME = "file-index.json"


@dataclass(frozen=True)
class FileEntry:
    path: str
    size: int
    modified_time: float


@dataclass(frozen=True)
class CachedScan:
    flag_usages: dict[str, list[FlagUsage]]
    flag_references: list[FlagReference]


def snapshot_files(root: Path, files: list[Path]) -> list[FileEntry]:
    entries: list[FileEntry] = []
    for path in files:
        try:
            stat = path.stat()
        except OSError:
            # Vanished since the walk; an impossible mtime forces a miss next time.
            entries.append(FileEntry(path=_rel(root, path), size=-1, modified_time=-1.0))
            continue
        entries.append(
            FileEntry(path=_rel(root, path), size=stat.st_size, modified_time=stat.st_mtime)
        )
    return entries


class FileIndexCache:
    """Per-workspace file index persisted under ``<root>/.flagsync``.

    Read once at scan start and written once at scan end. Concurrent scans
    of the same root are not coordinated.
    """

    def __init__(self, workspace_root: Path) -> None:
        self.workspace_root = Path(workspace_root)
        self.path = self.workspace_root / CACHE_DIR_NAME / CACHE_FILE_NAME

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("cache_unreadable path=%s error=%s", self.path, exc)
            return None
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.info(
                "cache_invalidated path=%s reason=version_mismatch found=%s expected=%s",
                self.path,
                data.get("version") if isinstance(data, dict) else None,
                CACHE_VERSION,
            )
            return None
        return data

    def lookup(self, files: list[FileEntry], flag_keys: list[str]) -> CachedScan | None:
        """Return the cached scan only if the tree and key set match exactly."""
        data = self.load()
        if data is None:
            return None
        cached_files = data.get("files")
        if not isinstance(cached_files, list) or len(cached_files) != len(files):
            logger.info("cache_miss reason=file_count")
            return None
        try:
            cached = [
                FileEntry(
                    path=str(item["path"]),
                    size=int(item["size"]),
                    modified_time=float(item["modified_time"]),
                )
                for item in cached_files
            ]
        except (KeyError, TypeError, ValueError):
            logger.warning("cache_invalidated path=%s reason=malformed_entries", self.path)
            return None
        if cached != files:
            logger.info("cache_miss reason=file_changed")
            return None
        if sorted(data.get("flag_keys") or []) != sorted(flag_keys):
            logger.info("cache_miss reason=flag_keys_changed")
            return None
        try:
            usages = {
                key: [FlagUsage(**item) for item in items]
                for key, items in data["flag_usages"].items()
            }
            references = [FlagReference(**item) for item in data["flag_references"]]
        except (AttributeError, KeyError, TypeError):
            logger.warning("cache_invalidated path=%s reason=malformed_results", self.path)
            return None
        logger.info("cache_hit path=%s files=%d", self.path, len(files))
        return CachedScan(flag_usages=usages, flag_references=references)

    def store(
        self,
        files: list[FileEntry],
        flag_keys: list[str],
        scan: CachedScan,
    ) -> None:
        payload = {
            "version": CACHE_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "files": [asdict(entry) for entry in files],
            "flag_keys": sorted(flag_keys),
            "flag_usages": {
                key: [asdict(usage) for usage in usages]
                for key, usages in sorted(scan.flag_usages.items())
            },
            "flag_references": [asdict(ref) for ref in scan.flag_references],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            logger.warning("cache_write_failed path=%s error=%s", self.path, exc)


def _rel(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
