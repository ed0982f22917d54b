from __future__ import annotations

from collections.abc import Sequence

from server.bibcheck.analysis.match.types import MATCH_THRESHOLD, TIE_EPSILON, RankedMatch
from server.bibcheck.sources.records import SourceRecord


def _score(record: SourceRecord) -> float:
    return float(record.score) if record.score is not None else 0.0


def resolve_ranked_match(
    candidates: Sequence[SourceRecord],
    *,
    threshold: float = MATCH_THRESHOLD,
    tie_epsilon: float = TIE_EPSILON,
) -> RankedMatch:
    """Decide whether the top candidate of a ranked result set is a confirmed match.

    The source's ordering is trusted: index 0 is the best candidate and index 1
    the runner-up, whatever their scores. Checks run in order: empty set, best
    score under `threshold`, runner-up within `tie_epsilon` of the best.
    """
    if not candidates:
        return RankedMatch(status="no_matches", best=None, comment="no matches found")

    best = candidates[0]
    best_score = _score(best)
    if best_score < threshold:
        return RankedMatch(
            status="below_threshold",
            best=None,
            comment=f"best match score {best_score:g} was less than threshold {threshold:g}",
        )

    if len(candidates) > 1:
        margin = best_score - _score(candidates[1])
        if margin < tie_epsilon:
            return RankedMatch(status="ambiguous", best=None, comment="no single conclusive match")

    return RankedMatch(status="matched", best=best, comment=f"best match score {best_score:g}")
