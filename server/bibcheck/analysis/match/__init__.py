from __future__ import annotations

from server.bibcheck.analysis.match.match import resolve_ranked_match
from server.bibcheck.analysis.match.types import MATCH_THRESHOLD, TIE_EPSILON, RankedMatch

__all__ = [
    "MATCH_THRESHOLD",
    "TIE_EPSILON",
    "RankedMatch",
    "resolve_ranked_match",
]
