from __future__ import annotations

import logging
from dataclasses import dataclass

from server.bibcheck.sources.http import HttpClient, decode_json
from server.bibcheck.sources.records import SourceRecord, join_names

logger = logging.getLogger(__name__)


def format_sciencedirect_result(result: dict) -> str:
    parts: list[str] = []
    authors = result.get("authors") or []
    names: list[str] = []
    for author in authors:
        if isinstance(author, dict):
            names.append(str(author.get("name") or ""))
        else:
            names.append(str(author))
    if join_names(names):
        parts.append(join_names(names) + ".")
    title = str(result.get("title") or "").strip()
    if title:
        parts.append(title + ".")
    source_title = str(result.get("sourceTitle") or "").strip()
    if source_title:
        venue = f"In {source_title}"
        volume_issue = str(result.get("volumeIssue") or "").strip()
        if volume_issue:
            venue += f" ({volume_issue})"
        pages = result.get("pages") or {}
        first, last = str(pages.get("first") or ""), str(pages.get("last") or "")
        if first:
            venue += f" {first}"
        if last:
            venue += f"-{last}"
        parts.append(venue + ".")
    return " ".join(parts)


@dataclass
class ElsevierClient:
    """ScienceDirect search API (https://dev.elsevier.com/sd_article_meta_tips.html)."""

    http: HttpClient
    api_key: str
    base_url: str = "https://api.elsevier.com"

    def search(self, *, authors: list[str], title: str, venue: str) -> list[SourceRecord]:
        body = {"authors": " AND ".join(authors), "title": title, "pub": venue}
        logger.info("Searching ScienceDirect for %r", title)
        resp = self.http.request(
            "PUT",
            f"{self.base_url}/content/search/sciencedirect",
            headers={"X-ELS-APIKey": self.api_key, "Accept": "application/json"},
            json_body=body,
        )
        payload = decode_json(resp) or {}
        records: list[SourceRecord] = []
        for result in payload.get("results") or []:
            if not isinstance(result, dict):
                continue
            records.append(
                SourceRecord(
                    display=format_sciencedirect_result(result),
                    identifier=str(result.get("doi") or "") or None,
                    raw=result,
                )
            )
        return records
