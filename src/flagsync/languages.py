from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_QUOTE = "['\"]"
_KEY = r"([A-Za-z][A-Za-z0-9_.\-]*)"


@dataclass(frozen=True)
class ReferencePattern:
    name: str
    kind: str  # "call", "assignment" or "literal"
    regex: re.Pattern[str]


@dataclass(frozen=True)
class LanguageSpec:
    name: str
    extensions: tuple[str, ...]
    comment_style: str  # "c", "python" or "php"
    patterns: tuple[ReferencePattern, ...]


def _call(functions: list[str]) -> ReferencePattern:
    names = "|".join(re.escape(name) for name in functions)
    return ReferencePattern(
        name="accessor_call",
        kind="call",
        regex=re.compile(rf"\b(?:{names})\s*\(\s*{_QUOTE}{_KEY}{_QUOTE}"),
    )


def _assignment(operator: str) -> ReferencePattern:
    return ReferencePattern(
        name="flag_assignment",
        kind="assignment",
        regex=re.compile(
            rf"\b\w*(?:flag|feature|experiment)\w*\s*{operator}\s*{_QUOTE}{_KEY}{_QUOTE}",
            re.IGNORECASE,
        ),
    )


_LITERAL = ReferencePattern(
    name="naming_convention_literal",
    kind="literal",
    regex=re.compile(
        rf"{_QUOTE}((?:feature|ff|flag)_[A-Za-z0-9_]+|[A-Za-z0-9_]+_flag){_QUOTE}"
    ),
)

_JS_FUNCS = ["isEnabled", "getFlag", "getFeatureFlag", "isFeatureEnabled"]

LANGUAGES: dict[str, LanguageSpec] = {
    "javascript": LanguageSpec(
        name="javascript",
        extensions=(".js", ".jsx", ".mjs", ".cjs"),
        comment_style="c",
        patterns=(_call(_JS_FUNCS), _assignment("[=:]"), _LITERAL),
    ),
    "typescript": LanguageSpec(
        name="typescript",
        extensions=(".ts", ".tsx", ".mts", ".cts"),
        comment_style="c",
        patterns=(_call(_JS_FUNCS), _assignment("[=:]"), _LITERAL),
    ),
    "python": LanguageSpec(
        name="python",
        extensions=(".py",),
        comment_style="python",
        patterns=(
            _call(["is_enabled", "get_flag", "get_feature_flag", "is_feature_enabled"]),
            _assignment("="),
            _LITERAL,
        ),
    ),
    "java": LanguageSpec(
        name="java",
        extensions=(".java",),
        comment_style="c",
        patterns=(
            _call(["isEnabled", "getFlag", "getFeatureFlag", "IsEnabled", "GetFlag"]),
            _assignment("="),
            _LITERAL,
        ),
    ),
    "csharp": LanguageSpec(
        name="csharp",
        extensions=(".cs",),
        comment_style="c",
        patterns=(
            _call(["isEnabled", "getFlag", "getFeatureFlag", "IsEnabled", "GetFlag"]),
            _assignment("="),
            _LITERAL,
        ),
    ),
    "go": LanguageSpec(
        name="go",
        extensions=(".go",),
        comment_style="c",
        patterns=(
            _call(["IsEnabled", "GetFlag", "GetFeatureFlag", "IsFeatureEnabled"]),
            _assignment("[:=]?="),
            _LITERAL,
        ),
    ),
    "php": LanguageSpec(
        name="php",
        extensions=(".php",),
        comment_style="php",
        patterns=(_call(_JS_FUNCS), _assignment("="), _LITERAL),
    ),
}
DEFAULT_LANGUAGES = tuple(LANGUAGES)


def validate_languages(names: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Fail fast on an unrecognised language instead of matching nothing."""
    unknown = sorted({name for name in names if name not in LANGUAGES})
    if unknown:
        raise ValueError(
            f"Unknown language(s): {', '.join(unknown)}. "
            f"Supported: {', '.join(sorted(LANGUAGES))}"
        )
    return tuple(names)


def language_for_path(
    path: Path | str,
    enabled: tuple[str, ...] | list[str] = DEFAULT_LANGUAGES,
) -> LanguageSpec | None:
    suffix = Path(path).suffix.lower()
    for name in enabled:
        spec = LANGUAGES[name]
        if suffix in spec.extensions:
            return spec
    return None
