from __future__ import annotations

import logging
from dataclasses import dataclass

from server.bibcheck.analysis.normalize import normalize_osti_id
from server.bibcheck.sources.http import HttpClient, SourceError, decode_json
from server.bibcheck.sources.records import SourceRecord, join_names

logger = logging.getLogger(__name__)

_OSTI_API = "https://www.osti.gov/api/v1"


def _as_text(value: object) -> str:
    if isinstance(value, list):
        return "; ".join(str(v).strip() for v in value if str(v).strip())
    return str(value or "").strip()


def format_osti_record(record: dict) -> str:
    parts: list[str] = []
    authors = record.get("authors")
    if isinstance(authors, list) and authors:
        parts.append(join_names([str(a) for a in authors]) + ".")
    title = _as_text(record.get("title"))
    if title:
        parts.append(title + ".")
    conference = _as_text(record.get("conference_info"))
    if conference:
        parts.append(f"in {conference}.")
    published = _as_text(record.get("publication_date"))
    if published:
        parts.append(f"published {published}.")
    doi = _as_text(record.get("doi"))
    if doi:
        parts.append(f"doi:{doi}.")
    return " ".join(parts)


@dataclass
class OstiClient:
    http: HttpClient
    base_url: str = _OSTI_API

    def get_record(self, osti_id: str) -> SourceRecord | None:
        ident = normalize_osti_id(osti_id)
        if not ident:
            raise ValueError(f"Not an OSTI ID: {osti_id!r}")
        logger.info("Fetching OSTI record %s", ident)
        resp = self.http.request("GET", f"{self.base_url}/records/{ident}", headers={"Accept": "application/json"})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise SourceError(f"OSTI API error: status {resp.status_code}")
        payload = decode_json(resp)
        if isinstance(payload, dict):
            payload = payload.get("records") or [payload]
        if not isinstance(payload, list) or not payload:
            return None
        record = payload[0]
        if not isinstance(record, dict):
            raise SourceError("OSTI API returned an unexpected record shape")
        return SourceRecord(display=format_osti_record(record), identifier=ident, raw=record)
