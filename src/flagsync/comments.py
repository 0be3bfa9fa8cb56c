"""Line-oriented comment classification.

The block-comment state is passed in and returned explicitly so every line
can be classified (and tested) on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


@dataclass(frozen=True)
class CommentSyntax:
    line_markers: tuple[str, ...]
    block_openers: tuple[str, ...]
    block_closers: tuple[str, ...]
    quotes: tuple[str, ...]


SYNTAXES: dict[str, CommentSyntax] = {
    "c": CommentSyntax(
        line_markers=("//",),
        block_openers=("/*",),
        block_closers=("*/",),
        quotes=('"', "'", "`"),
    ),
    "python": CommentSyntax(
        line_markers=("#",),
        block_openers=('"""', "'''"),
        block_closers=('"""', "'''"),
        quotes=('"', "'"),
    ),
    "php": CommentSyntax(
        line_markers=("//", "#"),
        block_openers=("/*",),
        block_closers=("*/",),
        quotes=('"', "'"),
    ),
}


class LineClassification(NamedTuple):
    is_comment: bool
    in_block: bool
    code: str  # the line with comment text blanked out, columns preserved
    closer: str = ""  # token that ends the open block, "" outside a block


def classify_line(
    line: str,
    in_block: bool,
    style: str = "c",
    closer: str | None = None,
) -> LineClassification:
    """Blank the comment text of ``line``.

    ``closer`` is the token that ends the block the previous line left open;
    when omitted any closing token of the style ends it.
    """
    syntax = SYNTAXES[style]
    pending = (closer,) if in_block and closer else syntax.block_closers
    chars = list(line)
    length = len(line)
    quote: str | None = None
    i = 0
    while i < length:
        if in_block:
            end, found = _find_closer(line, i, pending)
            stop = length if end < 0 else end + len(found)
            _blank(chars, i, stop)
            i = stop
            if end >= 0:
                in_block = False
                pending = syntax.block_closers
            continue

        ch = line[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        opener = _starts_with_any(line, i, syntax.block_openers)
        if opener:
            _blank(chars, i, i + len(opener))
            i += len(opener)
            in_block = True
            pending = (syntax.block_closers[syntax.block_openers.index(opener)],)
            continue
        if _starts_with_any(line, i, syntax.line_markers):
            _blank(chars, i, length)
            break
        if ch in syntax.quotes:
            quote = ch
        i += 1

    code = "".join(chars)
    is_comment = bool(line.strip()) and not code.strip()
    return LineClassification(
        is_comment=is_comment,
        in_block=in_block,
        code=code,
        closer=pending[0] if in_block else "",
    )


def iter_code_lines(text: str, style: str = "c"):
    """Yield ``(line_number, original_line, code)`` for lines that carry code."""
    in_block = False
    closer = ""
    for number, line in enumerate(text.splitlines(), start=1):
        result = classify_line(line, in_block, style, closer)
        in_block, closer = result.in_block, result.closer
        if result.code.strip():
            yield number, line, result.code


def _find_closer(line: str, start: int, closers: tuple[str, ...]) -> tuple[int, str]:
    best = -1
    best_closer = ""
    for closer in closers:
        index = line.find(closer, start)
        if index >= 0 and (best < 0 or index < best):
            best = index
            best_closer = closer
    return best, best_closer


def _starts_with_any(line: str, index: int, tokens: tuple[str, ...]) -> str:
    for token in tokens:
        if line.startswith(token, index):
            return token
    return ""


def _blank(chars: list[str], start: int, stop: int) -> None:
    for index in range(start, stop):
        chars[index] = " "
