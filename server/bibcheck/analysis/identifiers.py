from __future__ import annotations

import re

from server.bibcheck.analysis.normalize import normalize_arxiv_id, normalize_doi, normalize_osti_id

_DOI_IN_TEXT_RE = re.compile(
    r"(?:doi\s*:\s*|(?:https?://)?(?:dx\.)?doi\.org/)?(10\.\d{4,9}/[^\s\"<>]+)",
    re.IGNORECASE,
)
_ARXIV_IN_TEXT_RE = re.compile(
    r"(?:arxiv\s*:\s*|(?:https?://)?(?:www\.|export\.)?arxiv\.org/(?:abs|pdf)/)"
    r"(\d{4}\.\d{4,5}(?:v\d+)?|[a-z\-]+(?:\.[a-z]{2})?/\d{7}(?:v\d+)?)",
    re.IGNORECASE,
)
_OSTI_IN_TEXT_RE = re.compile(
    r"(?:\bosti\s*(?:id)?\s*[:#]?\s*|(?:https?://)?(?:www\.)?osti\.gov/(?:biblio|servlets/purl|pages/biblio)/)(\d{3,9})",
    re.IGNORECASE,
)
_URL_RE = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
_URL_TRAILING = ".,;:)]}>'\""


class RuleBasedIdentifierParser:
    """Regex extraction of DOI, arXiv, OSTI and URL identifiers from citation text.

    Each method returns "" when the identifier is absent.
    """

    def parse_doi(self, text: str) -> str:
        match = _DOI_IN_TEXT_RE.search(text or "")
        if not match:
            return ""
        return normalize_doi(match.group(1)) or ""

    def parse_arxiv(self, text: str) -> str:
        match = _ARXIV_IN_TEXT_RE.search(text or "")
        if not match:
            return ""
        return normalize_arxiv_id(match.group(1)) or ""

    def parse_osti(self, text: str) -> str:
        match = _OSTI_IN_TEXT_RE.search(text or "")
        if not match:
            return ""
        return normalize_osti_id(match.group(1)) or ""

    def parse_url(self, text: str) -> str:
        for match in _URL_RE.finditer(text or ""):
            url = match.group(0).rstrip(_URL_TRAILING)
            lowered = url.lower()
            # Resolver links are handled by the DOI and arXiv stages.
            if "doi.org/" in lowered:
                continue
            return url
        return ""
