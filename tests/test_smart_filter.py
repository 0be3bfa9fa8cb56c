from __future__ import annotations

from pathlib import Path

from flagsync.experimental.smart_filter import smart_filter


def test_below_threshold_keeps_everything() -> None:
    files = [Path("src/a.ts"), Path("tests/b.ts")]

    assert smart_filter(files, threshold=5) == (files, None)


def test_above_threshold_skips_low_value_directories() -> None:
    root = Path("/repo")
    files = [
        root / "src" / "a.ts",
        root / "tests" / "b.py",
        root / "src" / "Fixtures" / "c.go",
        root / "vendor" / "lib" / "d.js",
    ]

    kept, warning = smart_filter(files, threshold=1, root=root)

    assert kept == [root / "src" / "a.ts"]
    assert warning is not None
    assert "1 of 4 source files" in warning


def test_directories_above_root_are_ignored() -> None:
    root = Path("/home/tests/repo")
    files = [root / "src" / "a.ts", root / "lib" / "b.ts"]

    assert smart_filter(files, threshold=0, root=root) == (files, None)


def test_nothing_dropped_means_no_warning() -> None:
    files = [Path("app/a.go"), Path("app/b.java")]

    assert smart_filter(files, threshold=0) == (files, None)
