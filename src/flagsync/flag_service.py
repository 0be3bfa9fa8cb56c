"""Flag-service collaborator interface and a file-backed implementation."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from flagsync.errors import FlagSyncError, Result, err, ok
from flagsync.models import RemoteFlag

logger = logging.getLogger(__name__)


class FlagServiceClient(Protocol):
    def list_flags(self) -> Result[list[RemoteFlag]]: ...

    def get_environment_status(self, flag_key: str, env_key: str) -> Result[dict[str, Any]]: ...

    def archive_flags(self, keys: list[str]) -> Result[dict[str, bool]]: ...

    def unarchive_flags(self, keys: list[str]) -> Result[dict[str, bool]]: ...


@dataclass(frozen=True)
class RemoteSnapshot:
    flags: list[RemoteFlag]
    degraded: bool = False
    source: str = "live"  # "live" or "fallback"
    error: FlagSyncError | None = None


def parse_remote_flag(raw: dict[str, Any]) -> RemoteFlag:
    if not isinstance(raw, dict):
        raise ValueError(f"flag entry must be an object, got {type(raw).__name__}")
    key = raw.get("key")
    if not isinstance(key, str) or not key:
        raise ValueError(f"flag entry without a key: {raw!r}")
    environments = raw.get("environments") or {}
    if not isinstance(environments, dict):
        raise ValueError(f"flag {key!r} has malformed environments")
    return RemoteFlag(
        key=key,
        archived=bool(raw.get("archived", False)),
        updated_time=_updated_time(raw.get("updated_time") or raw.get("updatedTime")),
        name=str(raw.get("name") or key),
        description=str(raw.get("description") or ""),
        environments={str(env): dict(state) for env, state in environments.items() if isinstance(state, dict)},
    )


def _updated_time(value: Any) -> str | None:
    """Normalise a timestamp to ISO 8601; epoch seconds are accepted."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    return None


class StaticFlagService:
    """Flag service backed by a JSON export file.

    Accepts either a list of flags or ``{"items": [...]}``. Archive changes
    are written back to the file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> tuple[dict[str, Any] | list[Any], list[dict[str, Any]]]:
        document = json.loads(self.path.read_text(encoding="utf-8"))
        items = document.get("items", []) if isinstance(document, dict) else document
        if not isinstance(items, list):
            raise ValueError("flag export must be a list or an object with an 'items' list")
        return document, items

    def list_flags(self) -> Result[list[RemoteFlag]]:
        try:
            _, items = self._read()
            flags = [parse_remote_flag(item) for item in items]
        except FileNotFoundError:
            return err("E_FLAG_SOURCE", f"Flag export not found: {self.path}")
        except OSError as exc:
            return err("E_FLAG_SOURCE", f"Flag export unreadable: {exc}", retryable=True)
        except ValueError as exc:
            return err("E_FLAG_SOURCE", f"Flag export is invalid: {exc}", {"path": str(self.path)})
        logger.info("flags_listed source=%s count=%d", self.path, len(flags))
        return ok(flags)

    def get_environment_status(self, flag_key: str, env_key: str) -> Result[dict[str, Any]]:
        listed = self.list_flags()
        if not listed.ok:
            return listed
        for flag in listed.unwrap():
            if flag.key != flag_key:
                continue
            state = flag.environments.get(env_key)
            if state is None:
                return err("E_NOT_FOUND", f"Environment '{env_key}' not configured for '{flag_key}'")
            return ok({"enabled": bool(state.get("enabled", False)), **state})
        return err("E_NOT_FOUND", f"Flag '{flag_key}' not found")

    def archive_flags(self, keys: list[str]) -> Result[dict[str, bool]]:
        return self._set_archived(keys, True)

    def unarchive_flags(self, keys: list[str]) -> Result[dict[str, bool]]:
        return self._set_archived(keys, False)

    def _set_archived(self, keys: list[str], archived: bool) -> Result[dict[str, bool]]:
        wanted = set(keys)
        results = {key: False for key in keys}
        stamp = datetime.now(timezone.utc).isoformat()
        with self._lock:
            try:
                document, items = self._read()
                for item in items:
                    if isinstance(item, dict) and item.get("key") in wanted:
                        item["archived"] = archived
                        item["updated_time"] = stamp
                        results[item["key"]] = True
                self.path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
            except OSError as exc:
                return err("E_FLAG_SOURCE", f"Flag export not writable: {exc}", retryable=True)
            except ValueError as exc:
                return err("E_FLAG_SOURCE", f"Flag export is invalid: {exc}")
        logger.info(
            "flags_updated archived=%s requested=%d changed=%d",
            archived,
            len(keys),
            sum(results.values()),
        )
        return ok(results)


def load_remote_flags(
    client: FlagServiceClient,
    fallback: list[RemoteFlag] | None = None,
) -> Result[RemoteSnapshot]:
    """Read remote flags; a fallback is only used when marked degraded."""
    listed = client.list_flags()
    if listed.ok:
        return ok(RemoteSnapshot(flags=listed.unwrap()))
    error = listed.error
    if fallback is None:
        logger.error("remote_flags_unavailable code=%s message=%s", error.code, error.message)
        return listed
    logger.warning(
        "remote_flags_degraded code=%s message=%s fallback_count=%d",
        error.code,
        error.message,
        len(fallback),
    )
    return ok(RemoteSnapshot(flags=list(fallback), degraded=True, source="fallback", error=error))


def find_flag(flags: list[RemoteFlag], key: str) -> RemoteFlag | None:
    for flag in flags:
        if flag.key == key:
            return flag
    return None
