import unittest
from dataclasses import replace

from server.bibcheck.analysis.pipeline.capabilities import Capabilities, CascadePolicy
from server.bibcheck.analysis.pipeline.cascade import verify_entry
from server.bibcheck.analysis.pipeline.types import (
    Authors,
    CompareResult,
    DocumentMetadata,
    EntryVerdict,
    SearchResult,
    SoftwareDescriptor,
    WebsiteDescriptor,
)
from server.bibcheck.sources.http import SourceError
from server.bibcheck.sources.records import SourceRecord

_POLICY = CascadePolicy(fanout_timeout_seconds=5)


def _value(value):  # type: ignore[no-untyped-def]
    if isinstance(value, Exception):
        raise value
    return value


class _Calls(list):
    def names(self) -> list[str]:
        return [name for name, _ in self]


class _Identifiers:
    def __init__(self, calls: _Calls, **values) -> None:
        self.calls = calls
        self.values = values

    def _get(self, kind: str) -> str:
        return _value(self.values.get(kind, ""))

    def parse_doi(self, text: str) -> str:
        return self._get("doi")

    def parse_arxiv(self, text: str) -> str:
        return self._get("arxiv")

    def parse_osti(self, text: str) -> str:
        return self._get("osti")

    def parse_url(self, text: str) -> str:
        return self._get("url")


class _Fields:
    def __init__(self, calls: _Calls, **values) -> None:
        self.calls = calls
        self.values = {
            "authors": Authors(authors=["Jane Doe", "Richard Roe"]),
            "title": "A Study of Things",
            "venue": "Journal of Things",
            "kind": "scientific_publication",
            "website": WebsiteDescriptor(title="Site", authors=[], url=""),
            "software": SoftwareDescriptor(name="tool", developers=[], homepage_url=""),
        }
        self.values.update(values)

    def _get(self, kind: str):  # type: ignore[no-untyped-def]
        self.calls.append((f"fields.{kind}", None))
        return _value(self.values[kind])

    def parse_authors(self, text: str) -> Authors:
        return self._get("authors")

    def parse_title(self, text: str) -> str:
        return self._get("title")

    def parse_venue(self, text: str) -> str:
        return self._get("venue")

    def classify(self, text: str) -> str:
        return self._get("kind")

    def parse_website(self, text: str) -> WebsiteDescriptor:
        return self._get("website")

    def parse_software(self, text: str) -> SoftwareDescriptor:
        return self._get("software")


class _Documents:
    def document_metadata(self, body: bytes, content_type: str) -> DocumentMetadata:
        return DocumentMetadata(title="Fetched Title", authors=["Jane Doe"], contributing_org="")


class _Comparer:
    def __init__(self, calls: _Calls, equivalent: bool) -> None:
        self.calls = calls
        self.equivalent = equivalent

    def compare(self, first: str, second: str) -> CompareResult:
        self.calls.append(("compare", first))
        return CompareResult(is_equivalent=self.equivalent, explanation="same work" if self.equivalent else "different")


class _Searcher:
    def __init__(self, calls: _Calls, result) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.result = result

    def search_entry(self, text: str) -> SearchResult:
        self.calls.append(("search_entry", text))
        return _value(self.result)

    def search_website(self, website: WebsiteDescriptor) -> SearchResult:
        self.calls.append(("search_website", website))
        return _value(self.result)

    def search_software(self, software: SoftwareDescriptor) -> SearchResult:
        self.calls.append(("search_software", software))
        return _value(self.result)


class _Fetcher:
    def __init__(self, calls: _Calls, response) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.response = response

    def fetch(self, url: str) -> tuple[bytes, str]:
        self.calls.append(("fetch", url))
        return _value(self.response)


class _Doi:
    def __init__(self, calls: _Calls, result) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.result = result

    def resolve(self, doi: str) -> bool:
        self.calls.append(("doi", doi))
        return _value(self.result)


class _Lookup:
    def __init__(self, calls: _Calls, name: str, result) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.name = name
        self.result = result

    def get_record(self, ident: str) -> SourceRecord | None:
        self.calls.append((self.name, ident))
        return _value(self.result)

    def get_work_by_id(self, ident: str) -> SourceRecord | None:
        return self.get_record(ident)


class _Crossref:
    def __init__(self, calls: _Calls, scores) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.scores = scores

    def query_bibliographic(self, citation: str, *, rows: int = 2) -> list[SourceRecord]:
        self.calls.append(("crossref", rows))
        scores = _value(self.scores)
        return [SourceRecord(display=f"crossref candidate {i}", score=s) for i, s in enumerate(scores)][:rows]


class _Elsevier:
    def __init__(self, calls: _Calls, results) -> None:  # type: ignore[no-untyped-def]
        self.calls = calls
        self.results = results

    def search(self, *, authors: list[str], title: str, venue: str) -> list[SourceRecord]:
        self.calls.append(("elsevier", (tuple(authors), title, venue)))
        return _value(self.results)


def _caps(
    calls: _Calls,
    *,
    identifiers: dict | None = None,
    fields: dict | None = None,
    doi=True,  # type: ignore[no-untyped-def]
    osti=None,  # type: ignore[no-untyped-def]
    arxiv=None,  # type: ignore[no-untyped-def]
    crossref=(),  # type: ignore[no-untyped-def]
    elsevier=None,  # type: ignore[no-untyped-def]
    equivalent: bool = False,
    fetch=(b"<html></html>", "text/html"),  # type: ignore[no-untyped-def]
    search=SearchResult(found=False, comment="no such work"),  # type: ignore[no-untyped-def]
) -> Capabilities:
    return Capabilities(
        identifiers=_Identifiers(calls, **(identifiers or {})),
        fields=_Fields(calls, **(fields or {})),
        documents=_Documents(),
        comparer=_Comparer(calls, equivalent),
        searcher=_Searcher(calls, search),
        fetcher=_Fetcher(calls, fetch),
        doi=_Doi(calls, doi),
        osti=_Lookup(calls, "osti", osti),
        arxiv=_Lookup(calls, "arxiv", arxiv),
        crossref=_Crossref(calls, crossref),
        elsevier=None if elsevier is None else _Elsevier(calls, elsevier),
    )


class TestIdentifierStages(unittest.TestCase):
    def test_resolvable_doi_halts_the_cascade(self) -> None:
        calls = _Calls()
        caps = _caps(calls, identifiers={"doi": "10.1016/j.parco.2018.05.006", "arxiv": "2103.11991"})
        verdict = verify_entry("Doe, doi.org/10.1016/j.parco.2018.05.006", caps, policy=_POLICY)

        self.assertTrue(verdict.exists)
        self.assertEqual(verdict.decided_by, "doi")
        self.assertEqual(verdict.doi.status, "done")
        self.assertTrue(verdict.doi.found)
        self.assertEqual(verdict.doi.identifier, "10.1016/j.parco.2018.05.006")
        for source in ("osti", "arxiv", "elsevier", "crossref", "online", "web"):
            self.assertEqual(verdict.outcome(source).status, "not_attempted", source)
        self.assertEqual(calls.names(), ["doi"])

    def test_unresolvable_doi_is_a_conclusive_negative(self) -> None:
        calls = _Calls()
        verdict = verify_entry("Doe, doi:10.9999/fake", _caps(calls, identifiers={"doi": "10.9999/fake"}, doi=False), policy=_POLICY)
        self.assertFalse(verdict.exists)
        self.assertEqual(verdict.decided_by, "doi")
        self.assertEqual(verdict.doi.status, "done")
        self.assertFalse(verdict.doi.found)
        self.assertNotIn("crossref", calls.names())
        self.assertEqual(verdict.web.status, "not_attempted")

    def test_arxiv_entry_without_doi(self) -> None:
        calls = _Calls()
        record = SourceRecord(display="Ada Lovelace. Example Preprint Title.")
        caps = _caps(calls, identifiers={"arxiv": "2103.11991"}, arxiv=record)
        verdict = verify_entry("Lovelace, arXiv:2103.11991", caps, policy=_POLICY)
        self.assertEqual(verdict.doi.status, "not_attempted")
        self.assertEqual(verdict.arxiv.status, "done")
        self.assertTrue(verdict.arxiv.found)
        self.assertEqual(verdict.arxiv.result, "Ada Lovelace. Example Preprint Title.")
        self.assertEqual(verdict.decided_by, "arxiv")
        self.assertTrue(verdict.exists)

    def test_missing_arxiv_entry_is_conclusive(self) -> None:
        calls = _Calls()
        verdict = verify_entry("x", _caps(calls, identifiers={"arxiv": "2103.99999"}, arxiv=None), policy=_POLICY)
        self.assertFalse(verdict.exists)
        self.assertEqual(verdict.decided_by, "arxiv")
        self.assertEqual(verdict.arxiv.status, "done")
        self.assertNotIn("crossref", calls.names())

    def test_osti_runs_before_arxiv(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"osti": "1408927", "arxiv": "2103.11991"},
            osti=SourceRecord(display="Doe. Grid Report."),
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.decided_by, "osti")
        self.assertTrue(verdict.osti.found)
        self.assertEqual(verdict.arxiv.status, "not_attempted")
        self.assertEqual(calls.names(), ["osti"])

    def test_failed_doi_extraction_does_not_block_other_identifiers(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"doi": RuntimeError("model offline"), "arxiv": "2103.11991"},
            arxiv=SourceRecord(display="found"),
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.doi.status, "error")
        self.assertIn("model offline", verdict.doi.error or "")
        self.assertEqual(verdict.decided_by, "arxiv")
        self.assertTrue(verdict.exists)

    def test_source_error_is_recorded_and_cascade_continues(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"doi": "10.1000/x"},
            doi=SourceError("HTTP 503 from https://doi.org/api/handles/10.1000/x"),
            crossref=[95.0, 40.0],
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.doi.status, "error")
        self.assertEqual(verdict.doi.error, "SourceError: HTTP 503 from https://doi.org/api/handles/10.1000/x")
        self.assertFalse(verdict.doi.found)
        self.assertEqual(verdict.decided_by, "crossref")
        self.assertTrue(verdict.exists)


class TestSearchStages(unittest.TestCase):
    def test_publisher_result_is_conclusive(self) -> None:
        calls = _Calls()
        caps = _caps(calls, elsevier=[SourceRecord(display="Doe. A Study of Things. In Journal of Things.")])
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.decided_by, "elsevier")
        self.assertTrue(verdict.elsevier.found)
        self.assertIn(("elsevier", (("Jane Doe", "Richard Roe"), "A Study of Things", "Journal of Things")), calls)
        self.assertNotIn("crossref", calls.names())

    def test_publisher_skipped_when_a_field_is_missing(self) -> None:
        calls = _Calls()
        caps = _caps(calls, fields={"venue": ""}, elsevier=[SourceRecord(display="never")], crossref=[97.0])
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.elsevier.status, "error")
        self.assertFalse(verdict.elsevier.found)
        self.assertIn("unable to parse sufficient metadata", verdict.elsevier.error or "")
        self.assertIn("venue", verdict.elsevier.error or "")
        self.assertNotIn("elsevier", calls.names())
        self.assertEqual(verdict.decided_by, "crossref")

    def test_publisher_without_results_falls_through(self) -> None:
        calls = _Calls()
        verdict = verify_entry("x", _caps(calls, elsevier=[], crossref=[97.0]), policy=_POLICY)
        self.assertEqual(verdict.elsevier.status, "done")
        self.assertEqual(verdict.elsevier.result, "no matches found")
        self.assertEqual(verdict.decided_by, "crossref")

    def test_publisher_field_extraction_error(self) -> None:
        calls = _Calls()
        caps = _caps(calls, fields={"title": RuntimeError("bad json")}, elsevier=[SourceRecord(display="never")])
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.elsevier.status, "error")
        self.assertIn("title", verdict.elsevier.error or "")
        self.assertNotIn("elsevier", calls.names())

    def test_descriptive_fields_are_not_extracted_without_publisher_source(self) -> None:
        calls = _Calls()
        verify_entry("x", _caps(calls, crossref=[97.0]), policy=_POLICY)
        self.assertNotIn("fields.title", calls.names())

    def test_confirmed_crossref_match(self) -> None:
        calls = _Calls()
        verdict = verify_entry("x", _caps(calls, crossref=[90.0, 60.0]), policy=_POLICY)
        self.assertEqual(verdict.decided_by, "crossref")
        self.assertEqual(verdict.crossref.result, "crossref candidate 0")
        self.assertIn(("crossref", 2), calls)
        self.assertEqual(verdict.kind, None)

    def test_crossref_tie_falls_through_to_classification(self) -> None:
        calls = _Calls()
        verdict = verify_entry("x", _caps(calls, crossref=[90.0, 89.995]), policy=_POLICY)
        self.assertEqual(verdict.crossref.status, "done")
        self.assertFalse(verdict.crossref.found)
        self.assertEqual(verdict.crossref.result, "no single conclusive match")
        self.assertEqual(verdict.kind, "scientific_publication")
        self.assertEqual(verdict.decided_by, "web")


class TestClassificationBranch(unittest.TestCase):
    def test_fabricated_citation_ends_in_negative_web_search(self) -> None:
        calls = _Calls()
        caps = _caps(calls, crossref=[42.0, 12.0])
        text = "Q. Nobody, Imaginary Results on Nothing, Journal of Fiction 1 (2031)."
        verdict = verify_entry(text, caps, policy=_POLICY)
        self.assertIn("less than threshold", verdict.crossref.result)
        self.assertEqual(verdict.online.status, "not_attempted")
        self.assertEqual(verdict.web.status, "done")
        self.assertFalse(verdict.exists)
        self.assertEqual(verdict.decided_by, "web")
        self.assertIn(("search_entry", text), calls)

    def test_no_crossref_matches_still_reaches_web_search(self) -> None:
        calls = _Calls()
        verdict = verify_entry("x", _caps(calls, crossref=[]), policy=_POLICY)
        self.assertEqual(verdict.crossref.result, "no matches found")
        self.assertEqual(verdict.web.status, "done")

    def test_website_descriptor_url_is_compared(self) -> None:
        calls = _Calls()
        website = WebsiteDescriptor(title="Docs", authors=["Team"], url="https://example.org/docs")
        caps = _caps(calls, fields={"kind": "website", "website": website}, equivalent=True)
        verdict = verify_entry("Team, Docs, https://example.org/other", caps, policy=_POLICY)
        self.assertIn(("fetch", "https://example.org/docs"), calls)
        self.assertEqual(verdict.decided_by, "online")
        self.assertTrue(verdict.exists)
        self.assertEqual(verdict.online.identifier, "https://example.org/docs")
        self.assertEqual(verdict.web.status, "not_attempted")
        self.assertIn(("compare", "Title: Fetched Title\nAuthors: Jane Doe"), calls)

    def test_website_mismatch_falls_back_to_website_search(self) -> None:
        calls = _Calls()
        website = WebsiteDescriptor(title="Docs", authors=[], url="https://example.org/docs")
        caps = _caps(
            calls,
            fields={"kind": "website", "website": website},
            equivalent=False,
            search=SearchResult(found=True, comment="page exists"),
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.online.status, "done")
        self.assertFalse(verdict.online.found)
        self.assertIn(("search_website", website), calls)
        self.assertEqual(verdict.decided_by, "web")
        self.assertTrue(verdict.exists)

    def test_fetch_failure_is_an_error_not_a_negative(self) -> None:
        calls = _Calls()
        website = WebsiteDescriptor(title="Docs", authors=[], url="https://example.org/gone")
        caps = _caps(
            calls,
            fields={"kind": "website", "website": website},
            fetch=SourceError("HTTP 404 from https://example.org/gone"),
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.online.status, "error")
        self.assertEqual(verdict.online.error, "SourceError: HTTP 404 from https://example.org/gone")
        self.assertEqual(verdict.web.status, "done")

    def test_website_descriptor_failure_uses_extracted_url(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"url": "https://example.org/page"},
            fields={"kind": "website", "website": RuntimeError("bad json")},
            equivalent=True,
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertIn(("fetch", "https://example.org/page"), calls)
        self.assertEqual(verdict.decided_by, "online")

    def test_software_descriptor_failure_uses_extracted_url(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"url": "https://github.com/example/tool"},
            fields={"kind": "software_package", "software": RuntimeError("bad json")},
            equivalent=True,
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertIn(("fetch", "https://github.com/example/tool"), calls)
        self.assertEqual(verdict.online.status, "done")
        self.assertEqual(verdict.decided_by, "online")

    def test_software_descriptor_failure_without_url_is_an_error(self) -> None:
        calls = _Calls()
        caps = _caps(calls, fields={"kind": "software_package", "software": RuntimeError("bad json")})
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.online.status, "error")
        self.assertEqual(verdict.online.error, "RuntimeError: bad json")
        self.assertIn("search_entry", calls.names())

    def test_publication_with_url_is_compared(self) -> None:
        calls = _Calls()
        caps = _caps(calls, identifiers={"url": "https://example.org/paper.pdf"}, equivalent=False)
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertIn(("fetch", "https://example.org/paper.pdf"), calls)
        self.assertEqual(verdict.online.status, "done")
        self.assertIn("search_entry", calls.names())
        self.assertEqual(verdict.decided_by, "web")

    def test_software_homepage_is_compared(self) -> None:
        calls = _Calls()
        software = SoftwareDescriptor(name="tool", developers=["Dev"], homepage_url="https://tool.example.org/")
        caps = _caps(calls, fields={"kind": "software_package", "software": software}, equivalent=True)
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertIn(("fetch", "https://tool.example.org/"), calls)
        self.assertEqual(verdict.decided_by, "online")
        self.assertEqual(verdict.kind, "software_package")

    def test_software_without_homepage_uses_software_search(self) -> None:
        calls = _Calls()
        software = SoftwareDescriptor(name="tool", developers=["Dev"], homepage_url="")
        caps = _caps(
            calls,
            fields={"kind": "software_package", "software": software},
            search=SearchResult(found=True, comment="on PyPI"),
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.online.status, "not_attempted")
        self.assertIn(("search_software", software), calls)
        self.assertTrue(verdict.exists)
        self.assertEqual(verdict.web.result, "on PyPI")

    def test_classification_failure_still_searches(self) -> None:
        calls = _Calls()
        caps = _caps(calls, fields={"kind": RuntimeError("timeout")})
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.kind, "unknown")
        self.assertEqual(verdict.kind_error, "RuntimeError: timeout")
        self.assertEqual(verdict.online.status, "not_attempted")
        self.assertIn("search_entry", calls.names())
        self.assertEqual(verdict.web.status, "done")

    def test_classification_failure_is_kept_when_url_is_compared(self) -> None:
        calls = _Calls()
        caps = _caps(
            calls,
            identifiers={"url": "https://example.org/paper.pdf"},
            fields={"kind": RuntimeError("timeout")},
        )
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.online.status, "done")
        self.assertIsNone(verdict.online.error)
        self.assertEqual(verdict.kind_error, "RuntimeError: timeout")
        self.assertEqual(verdict.as_dict()["kind_error"], "RuntimeError: timeout")

    def test_web_search_error_leaves_verdict_undecided(self) -> None:
        calls = _Calls()
        caps = _caps(calls, search=RuntimeError("model did not obey the formatting instructions"))
        verdict = verify_entry("x", caps, policy=_POLICY)
        self.assertEqual(verdict.web.status, "error")
        self.assertFalse(verdict.exists)
        self.assertIsNone(verdict.decided_by)


class TestVerdict(unittest.TestCase):
    def test_rerun_is_identical(self) -> None:
        caps = _caps(_Calls(), identifiers={"doi": RuntimeError("flaky")}, crossref=[90.0, 89.995])
        first = verify_entry("Same text", caps, policy=_POLICY).as_dict()
        second = verify_entry("Same text", caps, policy=_POLICY).as_dict()
        self.assertEqual(first, second)

    def test_first_conclusion_is_latched(self) -> None:
        verdict = EntryVerdict(text="x")
        self.assertTrue(verdict.conclude("crossref", exists=True))
        self.assertFalse(verdict.conclude("web", exists=False))
        self.assertTrue(verdict.exists)
        self.assertEqual(verdict.decided_by, "crossref")

    def test_unknown_source_is_rejected(self) -> None:
        with self.assertRaises(KeyError):
            EntryVerdict(text="x").conclude("scopus", exists=True)

    def test_every_source_present_in_dict(self) -> None:
        out = replace(EntryVerdict(text="x"), kind="website").as_dict()
        self.assertEqual(out["kind"], "website")
        for source in ("doi", "osti", "arxiv", "elsevier", "crossref", "online", "web"):
            self.assertEqual(out[source]["status"], "not_attempted")


if __name__ == "__main__":
    unittest.main()
