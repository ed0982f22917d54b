from __future__ import annotations

import logging

from server.bibcheck.analysis.match import resolve_ranked_match
from server.bibcheck.analysis.pipeline.capabilities import Capabilities, CascadePolicy
from server.bibcheck.analysis.pipeline.compare_url import compare_url
from server.bibcheck.analysis.pipeline.fanout import describe_error, extract_fields
from server.bibcheck.analysis.pipeline.types import (
    DESCRIPTIVE_FIELDS,
    IDENTIFIER_FIELDS,
    KIND_SOFTWARE_PACKAGE,
    KIND_UNKNOWN,
    KIND_WEBSITE,
    Authors,
    EntryVerdict,
    Extraction,
    SearchResult,
    StageOutcome,
)

logger = logging.getLogger(__name__)


class _Cascade:
    """One evaluation of one citation. Owns its verdict; never shared between citations."""

    def __init__(self, text: str, capabilities: Capabilities, policy: CascadePolicy) -> None:
        self.text = text
        self.caps = capabilities
        self.policy = policy
        self.verdict = EntryVerdict(text=text)
        self.identifiers: dict[str, Extraction] = {}

    # -- helpers --

    def _extract(self, kinds) -> dict[str, Extraction]:
        return extract_fields(
            self.text,
            _FanoutParser(self.caps),
            kinds,
            timeout_seconds=self.policy.fanout_timeout_seconds,
            max_workers=self.policy.fanout_max_workers,
        )

    def _run(self, source: str, stage) -> bool:
        """Run one stage; an exception becomes that stage's error. Returns True once the verdict is decided."""
        outcome = self.verdict.outcome(source)
        try:
            stage(outcome)
        except Exception as e:
            logger.warning("%s stage failed: %s", source, e)
            outcome.mark_error(describe_error(e))
        return self.verdict.concluded

    def _identifier(self, kind: str, outcome: StageOutcome) -> str:
        extraction = self.identifiers.get(kind) or Extraction()
        if not extraction.ok:
            outcome.mark_error(f"{kind} extraction failed: {extraction.error}")
            return ""
        value = str(extraction.value or "")
        if value:
            outcome.identifier = value
        return value

    def _conclude(self, source: str, *, exists: bool) -> None:
        if self.verdict.conclude(source, exists=exists):
            logger.info("Verdict decided by %s: exists=%s", source, exists)

    # -- stages --

    def doi(self, outcome: StageOutcome) -> None:
        doi = self._identifier("doi", outcome)
        if not doi:
            return
        if self.caps.doi.resolve(doi):
            outcome.mark_done(found=True, result=f"https://doi.org/{doi}")
        else:
            outcome.mark_done(found=False, result=f"DOI {doi} does not exist in the registry")
        self._conclude("doi", exists=outcome.found)

    def osti(self, outcome: StageOutcome) -> None:
        osti_id = self._identifier("osti", outcome)
        if not osti_id:
            return
        record = self.caps.osti.get_record(osti_id)
        if record is None:
            outcome.mark_done(found=False, result=f"OSTI record {osti_id} not found")
        else:
            outcome.mark_done(found=True, result=record.display)
        self._conclude("osti", exists=outcome.found)

    def arxiv(self, outcome: StageOutcome) -> None:
        arxiv_id = self._identifier("arxiv", outcome)
        if not arxiv_id:
            return
        record = self.caps.arxiv.get_work_by_id(arxiv_id)
        if record is None:
            outcome.mark_done(found=False, result=f"arXiv entry {arxiv_id} not found")
        else:
            outcome.mark_done(found=True, result=record.display)
        self._conclude("arxiv", exists=outcome.found)

    def elsevier(self, outcome: StageOutcome) -> None:
        publisher = self.caps.elsevier
        if publisher is None:
            return
        fields = self._extract(DESCRIPTIVE_FIELDS)
        failed = [f"{kind}: {fields[kind].error}" for kind in DESCRIPTIVE_FIELDS if not fields[kind].ok]
        if failed:
            outcome.mark_error("field extraction failed (" + "; ".join(failed) + ")")
            return

        authors_value = fields["authors"].value
        authors = authors_value.authors if isinstance(authors_value, Authors) else []
        title = str(fields["title"].value or "")
        venue = str(fields["venue"].value or "")
        missing = [name for name, value in (("authors", authors), ("title", title), ("venue", venue)) if not value]
        if missing:
            # No query was sent, so this is not a negative finding.
            outcome.mark_error("unable to parse sufficient metadata for search (missing " + ", ".join(missing) + ")")
            return

        results = publisher.search(authors=authors, title=title, venue=venue)
        if not results:
            outcome.mark_done(found=False, result="no matches found")
            return
        outcome.mark_done(found=True, result=results[0].display)
        self._conclude("elsevier", exists=True)

    def crossref(self, outcome: StageOutcome) -> None:
        candidates = self.caps.crossref.query_bibliographic(self.text, rows=self.policy.crossref_rows)
        match = resolve_ranked_match(
            candidates,
            threshold=self.policy.match_threshold,
            tie_epsilon=self.policy.tie_epsilon,
        )
        if match.confirmed and match.best is not None:
            outcome.mark_done(found=True, result=match.best.display)
            self._conclude("crossref", exists=True)
            return
        logger.info("Crossref inconclusive: %s", match.comment)
        outcome.mark_done(found=False, result=match.comment)

    def classify(self) -> str:
        try:
            kind = self.caps.fields.classify(self.text)
        except Exception as e:
            logger.warning("Classification failed: %s", e)
            self.verdict.kind_error = describe_error(e)
            kind = KIND_UNKNOWN
        self.verdict.kind = kind
        return kind

    def _compare(self, outcome: StageOutcome, url: str) -> None:
        outcome.identifier = url
        result = compare_url(
            url,
            self.text,
            fetcher=self.caps.fetcher,
            documents=self.caps.documents,
            comparer=self.caps.comparer,
        )
        outcome.mark_done(found=result.is_equivalent, result=result.explanation)
        if result.is_equivalent:
            self._conclude("online", exists=True)

    def online(self, kind: str):
        """Classification-directed comparison. Returns the search to fall back on."""
        caps = self.caps
        extracted = self.identifiers.get("url") or Extraction()
        extracted_url = str(extracted.value or "") if extracted.ok else ""

        if kind == KIND_SOFTWARE_PACKAGE:
            software = None

            def stage(outcome: StageOutcome) -> None:
                nonlocal software
                try:
                    software = caps.fields.parse_software(self.text)
                except Exception as e:
                    if not extracted_url:
                        raise
                    logger.warning("Software descriptor extraction failed: %s", e)
                url = (software.homepage_url if software is not None else "") or extracted_url
                if url:
                    self._compare(outcome, url)

            self._run("online", stage)
            if software is None:
                return lambda: caps.searcher.search_entry(self.text)
            return lambda: caps.searcher.search_software(software)

        if kind == KIND_WEBSITE:
            website = None

            def stage(outcome: StageOutcome) -> None:
                nonlocal website
                try:
                    website = caps.fields.parse_website(self.text)
                except Exception as e:
                    # The extracted URL is still worth comparing.
                    if not extracted_url:
                        raise
                    logger.warning("Website descriptor extraction failed: %s", e)
                url = (website.url if website is not None else "") or extracted_url
                if url:
                    self._compare(outcome, url)

            self._run("online", stage)
            if website is None:
                return lambda: caps.searcher.search_entry(self.text)
            return lambda: caps.searcher.search_website(website)

        if extracted_url:
            self._run("online", lambda outcome: self._compare(outcome, extracted_url))
        elif not extracted.ok and self.verdict.online.status == "not_attempted":
            self.verdict.online.mark_error(f"url extraction failed: {extracted.error}")
        return lambda: caps.searcher.search_entry(self.text)

    def web(self, search) -> None:
        def stage(outcome: StageOutcome) -> None:
            result: SearchResult = search()
            outcome.mark_done(found=result.found, result=result.comment)
            self._conclude("web", exists=result.found)

        self._run("web", stage)

    def evaluate(self) -> EntryVerdict:
        self.identifiers = self._extract(IDENTIFIER_FIELDS)
        found = {k: v.value for k, v in self.identifiers.items() if v.ok and v.value}
        if found:
            logger.info("Identifiers detected: %s", found)

        for source in ("doi", "osti", "arxiv", "elsevier", "crossref"):
            if self._run(source, getattr(self, source)):
                return self.verdict

        search = self.online(self.classify())
        if self.verdict.concluded:
            return self.verdict
        self.web(search)
        return self.verdict


class _FanoutParser:
    """Routes fan-out kinds to the configured identifier and field extractors."""

    def __init__(self, caps: Capabilities) -> None:
        self.parse_doi = caps.identifiers.parse_doi
        self.parse_arxiv = caps.identifiers.parse_arxiv
        self.parse_osti = caps.identifiers.parse_osti
        self.parse_url = caps.identifiers.parse_url
        self.parse_authors = caps.fields.parse_authors
        self.parse_title = caps.fields.parse_title
        self.parse_venue = caps.fields.parse_venue
        self.classify = caps.fields.classify


def verify_entry(text: str, capabilities: Capabilities, *, policy: CascadePolicy | None = None) -> EntryVerdict:
    """Run the verification cascade for one citation and return its verdict.

    Stages run in order (DOI, OSTI, arXiv, publisher search, Crossref,
    classification-directed URL comparison, web search) and stop at the first
    conclusive one. Stage failures are recorded on the verdict and never raised.
    """
    return _Cascade(text, capabilities, policy or CascadePolicy()).evaluate()
