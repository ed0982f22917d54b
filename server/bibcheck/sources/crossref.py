from __future__ import annotations

import logging
from dataclasses import dataclass

from server.bibcheck.sources.http import HttpClient, decode_json
from server.bibcheck.sources.records import SourceRecord, join_names

logger = logging.getLogger(__name__)

_CROSSREF_WORKS = "https://api.crossref.org/works"


def _first(value: object) -> str:
    if isinstance(value, list) and value:
        return str(value[0] or "").strip()
    if isinstance(value, str):
        return value.strip()
    return ""


def _date_parts(item: dict) -> list[int]:
    for key in ("published-print", "published", "issued"):
        parts = ((item.get(key) or {}).get("date-parts") or [[]])[0]
        if parts and all(isinstance(p, int) for p in parts):
            return parts
    return []


def format_crossref_work(item: dict) -> str:
    parts: list[str] = []
    authors = []
    for author in item.get("author") or []:
        if not isinstance(author, dict):
            continue
        name = " ".join(p for p in (author.get("given"), author.get("family")) if p) or author.get("name") or ""
        if name:
            authors.append(name)
    if authors:
        parts.append(join_names(authors) + ",")
    title = _first(item.get("title"))
    if title:
        parts.append(f'"{title}",')
    container = _first(item.get("container-title"))
    if container:
        parts.append(container + ",")
    dp = _date_parts(item)
    if dp:
        parts.append("-".join(str(p) for p in dp) + ".")
    doi = str(item.get("DOI") or "").strip()
    if doi:
        parts.append(f"doi:{doi}.")
    return " ".join(parts)


@dataclass
class CrossrefClient:
    http: HttpClient
    mailto: str = ""
    works_url: str = _CROSSREF_WORKS

    def query_bibliographic(self, citation: str, *, rows: int = 2) -> list[SourceRecord]:
        """Ranked candidates for free-form citation text, best first."""
        params = {"query.bibliographic": citation, "rows": rows}
        if self.mailto:
            params["mailto"] = self.mailto
        logger.info("Querying Crossref (rows=%d)", rows)
        payload = decode_json(self.http.request("GET", self.works_url, params=params)) or {}
        items = (payload.get("message") or {}).get("items") or []
        records: list[SourceRecord] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                score = float(item.get("score"))
            except (TypeError, ValueError):
                score = 0.0
            records.append(
                SourceRecord(
                    display=format_crossref_work(item),
                    score=score,
                    identifier=str(item.get("DOI") or "") or None,
                    raw=item,
                )
            )
        return records
