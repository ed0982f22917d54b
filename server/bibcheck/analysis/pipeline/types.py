from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal

KIND_SCIENTIFIC_PUBLICATION = "scientific_publication"
KIND_SOFTWARE_PACKAGE = "software_package"
KIND_WEBSITE = "website"
KIND_UNKNOWN = "unknown"
ENTRY_KINDS = (KIND_SCIENTIFIC_PUBLICATION, KIND_SOFTWARE_PACKAGE, KIND_WEBSITE, KIND_UNKNOWN)

IDENTIFIER_FIELDS = ("doi", "arxiv", "osti", "url")
DESCRIPTIVE_FIELDS = ("authors", "title", "venue")

# Evidence sources in the order they appear in a verdict.
SOURCES = ("doi", "osti", "arxiv", "elsevier", "crossref", "online", "web")

StageStatus = Literal["not_attempted", "done", "error"]


@dataclass(frozen=True)
class Authors:
    authors: list[str]
    incomplete: bool = False


@dataclass(frozen=True)
class WebsiteDescriptor:
    title: str
    authors: list[str]
    url: str


@dataclass(frozen=True)
class SoftwareDescriptor:
    name: str
    developers: list[str]
    homepage_url: str


@dataclass(frozen=True)
class DocumentMetadata:
    title: str
    authors: list[str]
    contributing_org: str

    def to_comparison_text(self) -> str:
        fields: list[str] = []
        if self.title:
            fields.append(f"Title: {self.title}")
        if self.authors:
            fields.append("Authors: " + ", ".join(self.authors))
        if self.contributing_org:
            fields.append(f"Contributing Organization: {self.contributing_org}")
        return "\n".join(fields)


@dataclass(frozen=True)
class CompareResult:
    is_equivalent: bool
    explanation: str


@dataclass(frozen=True)
class SearchResult:
    found: bool
    comment: str


@dataclass(frozen=True)
class Extraction:
    """Outcome of one extraction call: `value` is empty when absent, `error` is set when the call failed."""

    value: object = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StageOutcome:
    status: StageStatus = "not_attempted"
    found: bool = False
    result: str = ""
    error: str | None = None
    identifier: str = ""

    def mark_done(self, *, found: bool, result: str = "") -> None:
        self.status = "done"
        self.found = found
        self.result = result
        self.error = None

    def mark_error(self, error: str) -> None:
        self.status = "error"
        self.found = False
        self.error = error


@dataclass
class EntryVerdict:
    """Aggregate verdict for one citation.

    `exists` is latched by the first conclusive stage: once `decided_by` is set,
    later calls to `conclude` are ignored.
    """

    text: str
    exists: bool = False
    decided_by: str | None = None
    kind: str | None = None
    kind_error: str | None = None
    doi: StageOutcome = field(default_factory=StageOutcome)
    osti: StageOutcome = field(default_factory=StageOutcome)
    arxiv: StageOutcome = field(default_factory=StageOutcome)
    elsevier: StageOutcome = field(default_factory=StageOutcome)
    crossref: StageOutcome = field(default_factory=StageOutcome)
    online: StageOutcome = field(default_factory=StageOutcome)
    web: StageOutcome = field(default_factory=StageOutcome)

    @property
    def concluded(self) -> bool:
        return self.decided_by is not None

    def outcome(self, source: str) -> StageOutcome:
        if source not in SOURCES:
            raise KeyError(f"Unknown evidence source: {source!r}")
        return getattr(self, source)

    def conclude(self, source: str, *, exists: bool) -> bool:
        if self.concluded:
            return False
        self.outcome(source)
        self.exists = exists
        self.decided_by = source
        return True

    def as_dict(self) -> dict:
        out = {
            "text": self.text,
            "exists": self.exists,
            "decided_by": self.decided_by,
            "kind": self.kind,
            "kind_error": self.kind_error,
        }
        for source in SOURCES:
            out[source] = asdict(self.outcome(source))
        return out
