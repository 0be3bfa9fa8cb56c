from __future__ import annotations

import json
from pathlib import Path

from flagsync.errors import err
from flagsync.flag_service import StaticFlagService, find_flag, load_remote_flags, parse_remote_flag
from flagsync.models import RemoteFlag


def _write_flags(path: Path, document: object) -> Path:
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


class _DownClient:
    def list_flags(self):
        return err("E_UPSTREAM", "service unavailable", retryable=True)


def test_lists_flags_from_items_document(tmp_path: Path) -> None:
    path = _write_flags(
        tmp_path / "flags.json",
        {"items": [{"key": "a", "updatedTime": "2024-01-01T00:00:00Z"}, {"key": "b", "archived": True}]},
    )

    flags = StaticFlagService(path).list_flags().unwrap()

    assert [flag.key for flag in flags] == ["a", "b"]
    assert flags[0].updated_time == "2024-01-01T00:00:00Z"
    assert flags[0].name == "a"
    assert flags[1].archived


def test_lists_flags_from_plain_list(tmp_path: Path) -> None:
    path = _write_flags(tmp_path / "flags.json", [{"key": "only"}])

    assert [flag.key for flag in StaticFlagService(path).list_flags().unwrap()] == ["only"]


def test_missing_and_invalid_exports_are_errors(tmp_path: Path) -> None:
    missing = StaticFlagService(tmp_path / "nope.json").list_flags()
    invalid = StaticFlagService(_write_flags(tmp_path / "bad.json", [{"name": "no key"}])).list_flags()

    assert missing.error.code == "E_FLAG_SOURCE"
    assert not missing.error.retryable
    assert invalid.error.code == "E_FLAG_SOURCE"


def test_archive_and_unarchive_write_back(tmp_path: Path) -> None:
    path = _write_flags(tmp_path / "flags.json", {"items": [{"key": "a"}, {"key": "b"}]})
    service = StaticFlagService(path)

    changed = service.archive_flags(["a", "ghost"]).unwrap()

    assert changed == {"a": True, "ghost": False}
    stored = json.loads(path.read_text(encoding="utf-8"))["items"]
    assert stored[0]["archived"] is True
    assert "updated_time" in stored[0]
    assert "archived" not in stored[1]

    service.unarchive_flags(["a"])
    assert not find_flag(service.list_flags().unwrap(), "a").archived


def test_environment_status(tmp_path: Path) -> None:
    path = _write_flags(
        tmp_path / "flags.json",
        [{"key": "a", "environments": {"production": {"enabled": True}}}],
    )
    service = StaticFlagService(path)

    assert service.get_environment_status("a", "production").unwrap()["enabled"] is True
    assert service.get_environment_status("a", "staging").error.code == "E_NOT_FOUND"
    assert service.get_environment_status("ghost", "production").error.code == "E_NOT_FOUND"


def test_load_remote_flags_uses_fallback_only_as_degraded() -> None:
    fallback = [RemoteFlag(key="cached")]

    without = load_remote_flags(_DownClient())
    degraded = load_remote_flags(_DownClient(), fallback=fallback).unwrap()

    assert not without.ok
    assert without.error.retryable
    assert degraded.degraded
    assert degraded.source == "fallback"
    assert degraded.flags == fallback
    assert degraded.error.code == "E_UPSTREAM"


def test_parse_remote_flag_ignores_malformed_environment_entries() -> None:
    flag = parse_remote_flag({"key": "a", "environments": {"prod": {"enabled": True}, "dev": "on"}})

    assert flag.environments == {"prod": {"enabled": True}}
    assert flag.enabled_environments() == ["prod"]


def test_epoch_timestamps_are_normalised(tmp_path: Path) -> None:
    path = _write_flags(
        tmp_path / "flags.json",
        [{"key": "a", "updated_time": 1704067200}, {"key": "b", "updatedTime": [1]}],
    )

    flags = StaticFlagService(path).list_flags().unwrap()

    assert flags[0].updated_time == "2024-01-01T00:00:00+00:00"
    assert flags[1].updated_time is None


def test_non_object_entries_are_an_invalid_export(tmp_path: Path) -> None:
    path = _write_flags(tmp_path / "flags.json", {"items": [{"key": "a"}, "b"]})

    listed = StaticFlagService(path).list_flags()

    assert listed.error.code == "E_FLAG_SOURCE"
    assert "must be an object" in listed.error.message
