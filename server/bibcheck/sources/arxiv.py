from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from server.bibcheck.analysis.normalize import normalize_arxiv_id, normalize_doi
from server.bibcheck.sources.http import HttpClient, SourceError, raise_for_status
from server.bibcheck.sources.records import SourceRecord, join_names

logger = logging.getLogger(__name__)

_ARXIV_API = "https://export.arxiv.org/api/query"
_ATOM_NS = "http://www.w3.org/2005/Atom"
_ARXIV_NS = "http://arxiv.org/schemas/atom"


def _clean_text(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = " ".join(value.replace("\n", " ").split())
    return cleaned if cleaned else None


def _parse_feed(xml_text: str) -> list[dict]:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise SourceError(f"arXiv API returned malformed XML: {e}") from e

    ns = {"atom": _ATOM_NS, "arxiv": _ARXIV_NS}
    entries: list[dict] = []
    for entry in root.findall("atom:entry", ns):
        id_url = _clean_text(entry.findtext("atom:id", default="", namespaces=ns))
        title = _clean_text(entry.findtext("atom:title", default="", namespaces=ns))
        # id_list queries for unknown IDs come back as a single "Error" entry.
        if not title or (title == "Error" and id_url and "api/errors" in id_url):
            continue
        authors: list[str] = []
        for auth in entry.findall("atom:author", ns):
            name = _clean_text(auth.findtext("atom:name", default="", namespaces=ns))
            if name:
                authors.append(name)
        entries.append(
            {
                "id": normalize_arxiv_id(id_url or ""),
                "id_url": id_url,
                "title": title,
                "published": _clean_text(entry.findtext("atom:published", default="", namespaces=ns)),
                "updated": _clean_text(entry.findtext("atom:updated", default="", namespaces=ns)),
                "authors": authors,
                "doi": normalize_doi(entry.findtext("arxiv:doi", default="", namespaces=ns) or ""),
                "journal_ref": _clean_text(entry.findtext("arxiv:journal_ref", default="", namespaces=ns)),
            }
        )
    return entries


def format_arxiv_entry(entry: dict) -> str:
    parts: list[str] = []
    authors = entry.get("authors") or []
    if authors:
        parts.append(join_names(authors) + ".")
    if entry.get("title"):
        parts.append(f"{entry['title']}.")
    published = entry.get("published")
    if published:
        parts.append(f"published {published}.")
    updated = entry.get("updated")
    if updated and updated != published:
        parts.append(f"updated {updated}.")
    return " ".join(parts)


@dataclass
class ArxivClient:
    http: HttpClient
    api_url: str = _ARXIV_API

    def get_work_by_id(self, arxiv_id: str) -> SourceRecord | None:
        ident = normalize_arxiv_id(arxiv_id)
        if not ident:
            raise ValueError(f"Not an arXiv identifier: {arxiv_id!r}")
        logger.info("Fetching arXiv entry %s", ident)
        resp = self.http.request("GET", self.api_url, params={"id_list": ident})
        raise_for_status(resp)
        entries = _parse_feed(resp.text)
        if not entries:
            return None
        entry = entries[0]
        return SourceRecord(display=format_arxiv_entry(entry), identifier=ident, raw=entry)
