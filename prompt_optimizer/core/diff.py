"""
Word- and line-level comparison of an original prompt and its optimized rewrite.

The line view is positional: line i of one text is compared with line i of the
other. A line that only moved is reported as removed and added unless it lands
on the same index.
"""
from __future__ import annotations

import html
import math
from dataclasses import dataclass, field
from typing import Literal


LineKind = Literal["unchanged", "removed", "added"]


@dataclass(frozen=True)
class DiffStats:
    added: int
    removed: int
    unchanged: int
    original_word_count: int
    optimized_word_count: int

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "removed": self.removed,
            "unchanged": self.unchanged,
            "original_word_count": self.original_word_count,
            "optimized_word_count": self.optimized_word_count,
        }


@dataclass(frozen=True)
class DiffResult:
    original_markup: str
    optimized_markup: str
    stats: DiffStats


@dataclass(frozen=True)
class DiffLine:
    kind: LineKind
    text: str


@dataclass(frozen=True)
class LineDiff:
    lines: list[DiffLine] = field(default_factory=list)

    def render(self) -> str:
        out: list[str] = []
        for line in self.lines:
            if line.kind == "removed":
                out.append(f"- {line.text}")
            elif line.kind == "added":
                out.append(f"+ {line.text}")
            else:
                out.append(f"  {line.text}")
        return "\n".join(out)


def tokenize(text: str) -> list[str]:
    return (text or "").split()


def _mark(word: str, kind: str) -> str:
    return f'<span class="diff-{kind}">{html.escape(word)}</span>'


def word_diff(original: str, optimized: str) -> DiffResult:
    original_words = tokenize(original)
    optimized_words = tokenize(optimized)
    original_set = {w.lower() for w in original_words}
    optimized_set = {w.lower() for w in optimized_words}

    added = removed = unchanged = 0

    original_parts: list[str] = []
    for word in original_words:
        if word.lower() not in optimized_set:
            removed += 1
            original_parts.append(_mark(word, "removed"))
        else:
            unchanged += 1
            original_parts.append(html.escape(word))

    optimized_parts: list[str] = []
    for word in optimized_words:
        if word.lower() not in original_set:
            added += 1
            optimized_parts.append(_mark(word, "added"))
        else:
            optimized_parts.append(html.escape(word))

    return DiffResult(
        original_markup=" ".join(original_parts),
        optimized_markup=" ".join(optimized_parts),
        stats=DiffStats(
            added=added,
            removed=removed,
            unchanged=unchanged,
            original_word_count=len(original_words),
            optimized_word_count=len(optimized_words),
        ),
    )


def line_diff(original: str, optimized: str) -> LineDiff:
    a = (original or "").split("\n")
    b = (optimized or "").split("\n")
    a_lines, b_lines = set(a), set(b)

    lines: list[DiffLine] = []
    for i in range(max(len(a), len(b))):
        left = a[i] if i < len(a) else ""
        right = b[i] if i < len(b) else ""
        if left == right:
            lines.append(DiffLine("unchanged", left))
            continue
        # Blank lines are never reported as churn.
        if left and left not in b_lines:
            lines.append(DiffLine("removed", left))
        if right and right not in a_lines:
            lines.append(DiffLine("added", right))
    return LineDiff(lines=lines)


def similarity(original: str, optimized: str) -> int:
    """Jaccard index of the lowercase word sets, as a whole percentage."""
    a = {w.lower() for w in tokenize(original)}
    b = {w.lower() for w in tokenize(optimized)}
    if not a and not b:
        return 100
    if not a or not b:
        return 0
    return math.floor(len(a & b) / len(a | b) * 100 + 0.5)
