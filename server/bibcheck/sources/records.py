from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceRecord:
    """One record returned by an evidence source, reduced to a displayable string.

    `score` is only set by sources that rank their candidates (Crossref).
    """

    display: str
    score: float | None = None
    identifier: str | None = None
    raw: dict | None = None


def join_names(names: list[str]) -> str:
    return ", ".join(n.strip() for n in names if n and n.strip())
