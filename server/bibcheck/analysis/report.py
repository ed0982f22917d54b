from __future__ import annotations

from server.bibcheck.analysis.pipeline.types import SOURCES, EntryVerdict, StageOutcome

SOURCE_LABELS = {
    "doi": "DOI",
    "osti": "OSTI",
    "arxiv": "arXiv",
    "elsevier": "Elsevier",
    "crossref": "Crossref",
    "online": "Online",
    "web": "Web search",
}


def outcome_label(outcome: StageOutcome) -> str:
    """Exactly one of: positive, negative, error, not attempted."""
    if outcome.status == "error":
        return "error"
    if outcome.status == "done":
        return "positive" if outcome.found else "negative"
    return "not attempted"


def format_verdict(verdict: EntryVerdict) -> str:
    lines: list[str] = []
    lines.append(verdict.text.strip())
    decided = SOURCE_LABELS.get(verdict.decided_by or "", "no conclusive source")
    lines.append(f"  exists: {'yes' if verdict.exists else 'no'} ({decided})")
    if verdict.kind:
        kind_line = f"  kind: {verdict.kind}"
        if verdict.kind_error:
            kind_line += f" (classification failed: {verdict.kind_error})"
        lines.append(kind_line)
    for source in SOURCES:
        outcome = verdict.outcome(source)
        label = outcome_label(outcome)
        line = f"  {SOURCE_LABELS[source]:<10} {label}"
        detail = outcome.error if label == "error" else outcome.result
        if outcome.identifier:
            line += f" [{outcome.identifier}]"
        if detail:
            line += f": {' '.join(detail.split())}"
        lines.append(line)
    return "\n".join(lines)


def verdict_to_dict(verdict: EntryVerdict) -> dict:
    out = verdict.as_dict()
    for source in SOURCES:
        out[source]["label"] = outcome_label(verdict.outcome(source))
    return out
