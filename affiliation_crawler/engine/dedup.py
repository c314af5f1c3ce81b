"""Reuse of affiliations already resolved for a repeated (author, title) pair."""

from __future__ import annotations

from typing import Sequence

from ..records import Record


def normalize(text: str | None) -> str:
    return (text or "").strip().lower()


def same_work(left: Record, right: Record) -> bool:
    return normalize(left.author) == normalize(right.author) and normalize(
        left.title
    ) == normalize(right.title)


def find_duplicate(records: Sequence[Record], index: int) -> Record | None:
    """Return the closest earlier record for the same work that has an affiliation.

    The scan walks backward from ``index - 1`` to ``0``; entries before the
    current index have already been finalized in this processing order.
    """

    if index <= 0 or index >= len(records):
        return None
    target = records[index]
    for position in range(index - 1, -1, -1):
        candidate = records[position]
        if candidate.has_affiliation and same_work(candidate, target):
            return candidate
    return None


__all__ = ["find_duplicate", "normalize", "same_work"]
