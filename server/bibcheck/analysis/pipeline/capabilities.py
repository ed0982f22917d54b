from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from server.bibcheck.analysis.identifiers import RuleBasedIdentifierParser
from server.bibcheck.analysis.match.types import MATCH_THRESHOLD, TIE_EPSILON
from server.bibcheck.analysis.pipeline.types import (
    Authors,
    CompareResult,
    DocumentMetadata,
    SearchResult,
    SoftwareDescriptor,
    WebsiteDescriptor,
)
from server.bibcheck.config import Settings
from server.bibcheck.llm.entry_parser import OpenRouterEntryParser
from server.bibcheck.llm.openrouter import OpenRouterClient
from server.bibcheck.sources.arxiv import ArxivClient
from server.bibcheck.sources.crossref import CrossrefClient
from server.bibcheck.sources.doi import DoiClient
from server.bibcheck.sources.elsevier import ElsevierClient
from server.bibcheck.sources.http import HttpClient, UrlFetcher
from server.bibcheck.sources.osti import OstiClient
from server.bibcheck.sources.records import SourceRecord

logger = logging.getLogger(__name__)


class IdentifierParser(Protocol):
    def parse_doi(self, text: str) -> str: ...

    def parse_arxiv(self, text: str) -> str: ...

    def parse_osti(self, text: str) -> str: ...

    def parse_url(self, text: str) -> str: ...


class FieldParser(Protocol):
    def parse_authors(self, text: str) -> Authors: ...

    def parse_title(self, text: str) -> str: ...

    def parse_venue(self, text: str) -> str: ...

    def classify(self, text: str) -> str: ...

    def parse_website(self, text: str) -> WebsiteDescriptor: ...

    def parse_software(self, text: str) -> SoftwareDescriptor: ...


class DocumentReader(Protocol):
    def document_metadata(self, body: bytes, content_type: str) -> DocumentMetadata: ...


class Comparer(Protocol):
    def compare(self, first: str, second: str) -> CompareResult: ...


class Searcher(Protocol):
    def search_entry(self, text: str) -> SearchResult: ...

    def search_website(self, website: WebsiteDescriptor) -> SearchResult: ...

    def search_software(self, software: SoftwareDescriptor) -> SearchResult: ...


class Fetcher(Protocol):
    def fetch(self, url: str) -> tuple[bytes, str]: ...


class DoiRegistry(Protocol):
    def resolve(self, doi: str) -> bool: ...


class OstiSource(Protocol):
    def get_record(self, osti_id: str) -> SourceRecord | None: ...


class ArxivSource(Protocol):
    def get_work_by_id(self, arxiv_id: str) -> SourceRecord | None: ...


class CrossrefSource(Protocol):
    def query_bibliographic(self, citation: str, *, rows: int = 2) -> list[SourceRecord]: ...


class PublisherSource(Protocol):
    def search(self, *, authors: list[str], title: str, venue: str) -> list[SourceRecord]: ...


@dataclass(frozen=True)
class Capabilities:
    """Collaborators the cascade talks to. `elsevier` is None when publisher search is off."""

    identifiers: IdentifierParser
    fields: FieldParser
    documents: DocumentReader
    comparer: Comparer
    searcher: Searcher
    fetcher: Fetcher
    doi: DoiRegistry
    osti: OstiSource
    arxiv: ArxivSource
    crossref: CrossrefSource
    elsevier: PublisherSource | None = None


@dataclass(frozen=True)
class CascadePolicy:
    match_threshold: float = MATCH_THRESHOLD
    tie_epsilon: float = TIE_EPSILON
    crossref_rows: int = 2
    fanout_timeout_seconds: float = 30.0
    fanout_max_workers: int = 8

    @classmethod
    def from_settings(cls, settings: Settings) -> "CascadePolicy":
        return cls(
            match_threshold=settings.match_threshold,
            tie_epsilon=settings.match_tie_epsilon,
            crossref_rows=settings.crossref_rows,
            fanout_timeout_seconds=settings.fanout_timeout_seconds,
            fanout_max_workers=settings.fanout_max_workers,
        )


def build_capabilities(settings: Settings) -> Capabilities:
    api_http = HttpClient(user_agent=settings.user_agent, timeout_seconds=settings.api_timeout_seconds)
    fetch_http = HttpClient(user_agent=settings.user_agent, timeout_seconds=settings.fetch_timeout_seconds)

    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set; field extraction, comparison and web search will fail.")
    llm = OpenRouterClient(
        api_key=settings.openrouter_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    parser = OpenRouterEntryParser(
        llm=llm,
        compare_llm=llm.with_model(settings.llm_compare_model),
        search_llm=llm.with_model(settings.llm_search_model),
        document_max_chars=settings.document_max_chars,
    )
    identifiers: IdentifierParser = parser if settings.identifier_backend == "llm" else RuleBasedIdentifierParser()
    logger.info("Identifier extraction backend: %s", settings.identifier_backend)

    elsevier = None
    if settings.elsevier_enabled:
        elsevier = ElsevierClient(
            http=api_http,
            api_key=settings.elsevier_api_key,
            base_url=settings.elsevier_base_url,
        )

    return Capabilities(
        identifiers=identifiers,
        fields=parser,
        documents=parser,
        comparer=parser,
        searcher=parser,
        fetcher=UrlFetcher(fetch_http, max_bytes=settings.fetch_max_mb * 1024 * 1024),
        doi=DoiClient(api_http),
        osti=OstiClient(api_http),
        arxiv=ArxivClient(api_http),
        crossref=CrossrefClient(api_http, mailto=settings.crossref_mailto),
        elsevier=elsevier,
    )
