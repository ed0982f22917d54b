from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from server.bibcheck.sources.records import SourceRecord


RankedMatchStatus = Literal["matched", "ambiguous", "below_threshold", "no_matches"]

MATCH_THRESHOLD = 85.0
TIE_EPSILON = 0.01


@dataclass(frozen=True)
class RankedMatch:
    status: RankedMatchStatus
    best: SourceRecord | None
    comment: str

    @property
    def confirmed(self) -> bool:
        return self.status == "matched" and self.best is not None
