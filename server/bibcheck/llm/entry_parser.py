from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from server.bibcheck.analysis.documents import content_kind, document_text
from server.bibcheck.analysis.normalize import normalize_arxiv_id, normalize_doi, normalize_osti_id
from server.bibcheck.analysis.pipeline.types import (
    ENTRY_KINDS,
    KIND_UNKNOWN,
    Authors,
    CompareResult,
    DocumentMetadata,
    SearchResult,
    SoftwareDescriptor,
    WebsiteDescriptor,
)
from server.bibcheck.llm.openrouter import LlmOutputError, OpenRouterClient
from server.bibcheck.prompts import get_prompt, render_prompt

logger = logging.getLogger(__name__)

_VERDICT_RE = re.compile(r"^[\s*_`#>\[\(\"']*(yes|no)\b[\s\]\)\"'*_:.,-]*(.*)$", re.IGNORECASE | re.DOTALL)


def _string_field(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise LlmOutputError(f"LLM field {key!r} must be a string (got {type(value).__name__}).")
    return value.strip()


def _string_list(payload: dict, key: str) -> list[str]:
    value = payload.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise LlmOutputError(f"LLM field {key!r} must be a list of strings.")
    return [str(v).strip() for v in value if str(v or "").strip()]


def _http_url(raw: str) -> str:
    raw = (raw or "").strip()
    if not raw:
        return ""
    if raw.lower().startswith("www."):
        raw = "https://" + raw
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise LlmOutputError(f"LLM provided a URL that did not parse: {raw!r}")
    return raw


def parse_yes_no(answer: str) -> SearchResult:
    """Read a "YES [comment]" / "NO [comment]" answer from a search model."""
    match = _VERDICT_RE.match(answer or "")
    if not match:
        raise LlmOutputError("model did not obey the formatting instructions")
    comment = " ".join(match.group(2).split())
    if comment.startswith("[") and comment.endswith("]"):
        comment = comment[1:-1].strip()
    return SearchResult(found=match.group(1).lower() == "yes", comment=comment)


@dataclass
class OpenRouterEntryParser:
    """Text-understanding operations over citation text, answered by chat models.

    `llm` handles extraction and classification, `compare_llm` the metadata
    comparison, and `search_llm` the web-grounded existence checks.
    """

    llm: OpenRouterClient
    compare_llm: OpenRouterClient
    search_llm: OpenRouterClient
    document_max_chars: int = 40_000

    def _ask(self, prompt: str, user: str) -> dict:
        return self.llm.chat_json(system=get_prompt(prompt), user=user)

    # -- identifiers --

    def parse_doi(self, text: str) -> str:
        raw = _string_field(self._ask("parse_doi", text), "doi")
        if not raw:
            return ""
        doi = normalize_doi(raw)
        if not doi:
            raise LlmOutputError(f"LLM returned a value that is not a DOI: {raw!r}")
        return doi

    def parse_arxiv(self, text: str) -> str:
        raw = _string_field(self._ask("parse_arxiv", text), "arxiv")
        if not raw:
            return ""
        ident = normalize_arxiv_id(raw)
        if not ident:
            raise LlmOutputError(f"LLM returned a value that is not an arXiv identifier: {raw!r}")
        return ident

    def parse_osti(self, text: str) -> str:
        raw = _string_field(self._ask("parse_osti", text), "osti")
        if not raw:
            return ""
        ident = normalize_osti_id(raw)
        if not ident:
            raise LlmOutputError(f"LLM returned a value that is not an OSTI ID: {raw!r}")
        return ident

    def parse_url(self, text: str) -> str:
        return _http_url(_string_field(self._ask("parse_url", text), "url"))

    # -- descriptive fields --

    def parse_authors(self, text: str) -> Authors:
        payload = self._ask("parse_authors", text)
        return Authors(authors=_string_list(payload, "authors"), incomplete=bool(payload.get("has_et_al")))

    def parse_title(self, text: str) -> str:
        return _string_field(self._ask("parse_title", text), "title")

    def parse_venue(self, text: str) -> str:
        return _string_field(self._ask("parse_venue", text), "venue")

    def classify(self, text: str) -> str:
        kind = _string_field(self._ask("classify", text), "kind").lower()
        if kind not in ENTRY_KINDS:
            logger.info("Unrecognized entry kind %r; treating as unknown", kind)
            return KIND_UNKNOWN
        return kind

    def parse_website(self, text: str) -> WebsiteDescriptor:
        payload = self._ask("parse_website", text)
        return WebsiteDescriptor(
            title=_string_field(payload, "title"),
            authors=_string_list(payload, "authors"),
            url=_http_url(_string_field(payload, "url")),
        )

    def parse_software(self, text: str) -> SoftwareDescriptor:
        payload = self._ask("parse_software", text)
        return SoftwareDescriptor(
            name=_string_field(payload, "name"),
            developers=_string_list(payload, "developers"),
            homepage_url=_http_url(_string_field(payload, "homepage_url")),
        )

    # -- fetched documents --

    def document_metadata(self, body: bytes, content_type: str) -> DocumentMetadata:
        kind = content_kind(content_type)
        if kind is None:
            raise ValueError(f"unexpected content type: {content_type}")
        text = document_text(body, content_type)
        if len(text) > self.document_max_chars:
            logger.info("Document text truncated from %d to %d chars", len(text), self.document_max_chars)
            text = text[: self.document_max_chars]
        system = render_prompt("document_metadata", content_kind="PDF document" if kind == "pdf" else "website")
        payload = self.llm.chat_json(system=system, user=text)
        return DocumentMetadata(
            title=_string_field(payload, "title"),
            authors=_string_list(payload, "authors"),
            contributing_org=_string_field(payload, "contributing_org"),
        )

    # -- comparison and search --

    def compare(self, first: str, second: str) -> CompareResult:
        user = f"ENTRY 1:\n\n{first}\n\nENTRY 2:\n\n{second}\n"
        payload = self.compare_llm.chat_json(system=get_prompt("compare"), user=user)
        verdict = payload.get("is_equivalent")
        if not isinstance(verdict, bool):
            raise LlmOutputError("LLM comparison JSON missing boolean 'is_equivalent'.")
        return CompareResult(is_equivalent=verdict, explanation=_string_field(payload, "explanation"))

    def search_entry(self, text: str) -> SearchResult:
        return parse_yes_no(self.search_llm.chat_text(system=get_prompt("search_entry"), user=text))

    def search_website(self, website: WebsiteDescriptor) -> SearchResult:
        user = f"URL: {website.url}\nTitle: {website.title}\nAuthors: {', '.join(website.authors)}"
        return parse_yes_no(self.search_llm.chat_text(system=get_prompt("search_website"), user=user))

    def search_software(self, software: SoftwareDescriptor) -> SearchResult:
        user = (
            f"Homepage: {software.homepage_url}\nName: {software.name}\n"
            f"Developers: {', '.join(software.developers)}"
        )
        return parse_yes_no(self.search_llm.chat_text(system=get_prompt("search_software"), user=user))
