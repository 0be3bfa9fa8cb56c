from __future__ import annotations

import functools
import logging
import re
from pathlib import Path
from typing import Iterable

from flagsync.comments import iter_code_lines
from flagsync.config import DEFAULT_MIN_CONFIDENCE
from flagsync.languages import LanguageSpec
from flagsync.models import FlagReference, FlagUsage

logger = logging.getLogger(__name__)

_NAME_SHAPE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")


def read_source(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")


@functools.lru_cache(maxsize=4096)
def key_pattern(flag_key: str) -> re.Pattern[str]:
    if not flag_key:
        raise ValueError("flag key must be a non-empty string")
    return re.compile(r"\b" + re.escape(flag_key) + r"\b")


def find_usages_in_text(
    text: str,
    flag_keys: Iterable[str],
    language: LanguageSpec,
    file_label: str,
) -> dict[str, list[FlagUsage]]:
    patterns = [(key, key_pattern(key)) for key in flag_keys]
    found: dict[str, list[FlagUsage]] = {}
    for number, line, code in iter_code_lines(text, language.comment_style):
        for key, pattern in patterns:
            if pattern.search(code):
                found.setdefault(key, []).append(
                    FlagUsage(file=file_label, line=number, context=line.strip())
                )
    return found


def find_flag_usages(
    path: Path,
    flag_keys: Iterable[str],
    language: LanguageSpec,
    root: Path | None = None,
) -> dict[str, list[FlagUsage]]:
    """Exact-key search: one usage per (key, non-comment line) match."""
    keys = list(flag_keys)
    for key in keys:
        key_pattern(key)
    label = _label(path, root)
    return find_usages_in_text(read_source(path), keys, language, label)


def extract_references(
    path: Path,
    language: LanguageSpec,
    root: Path | None = None,
) -> list[FlagReference]:
    """Pattern search: apply the language's reference patterns in order."""
    return references_in_text(read_source(path), language, _label(path, root))


def references_in_text(
    text: str,
    language: LanguageSpec,
    file_label: str,
) -> list[FlagReference]:
    references: list[FlagReference] = []
    for number, line, code in iter_code_lines(text, language.comment_style):
        for pattern in language.patterns:
            for match in pattern.regex.finditer(code):
                flag = match.group(1)
                references.append(
                    FlagReference(
                        flag=flag,
                        file=file_label,
                        line=number,
                        column=match.start(1) + 1,
                        context=line.strip(),
                        confidence=score_reference(flag, pattern.kind),
                        pattern=pattern.name,
                        language=language.name,
                    )
                )
    return references


def score_reference(flag: str, pattern_kind: str) -> float:
    confidence = 0.5
    if "_flag" in flag or "feature_" in flag:
        confidence += 0.2
    if pattern_kind == "call":
        confidence += 0.3
    if _NAME_SHAPE.match(flag):
        confidence += 0.1
    if len(flag) < 3 or len(flag) > 50:
        confidence -= 0.2
    return round(min(1.0, max(0.0, confidence)), 4)


def filter_references(
    references: Iterable[FlagReference],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> list[FlagReference]:
    kept: list[FlagReference] = []
    dropped = 0
    for reference in references:
        if reference.confidence >= min_confidence:
            kept.append(reference)
        else:
            dropped += 1
    if dropped:
        logger.debug("low_confidence_references_dropped count=%d threshold=%s", dropped, min_confidence)
    return kept


def _label(path: Path, root: Path | None) -> str:
    if root is None:
        return path.as_posix()
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
