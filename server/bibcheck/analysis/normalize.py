from __future__ import annotations

import re


_DOI_CLEAN_RE = re.compile(r"^[\s\[\(\{<]*(?P<doi>10\.\d{4,9}/[-._;()/:A-Z0-9]+)", re.IGNORECASE)
_DOI_CORE_RE = re.compile(r"(10\.\d{4,9}/[-._;()/:A-Z0-9]+)", re.IGNORECASE)
_DOI_PREFIX_RE = re.compile(r"^(?:doi:\s*|(?:https?://)?(?:dx\.)?doi\.org/)", re.IGNORECASE)

_ARXIV_NEW_RE = re.compile(r"(?P<id>\d{4}\.\d{4,5})(?P<version>v\d+)?", re.IGNORECASE)
_ARXIV_OLD_RE = re.compile(r"(?P<id>[a-z\-]+(?:\.[a-z]{2})?/\d{7})(?P<version>v\d+)?", re.IGNORECASE)
_ARXIV_PREFIX_RE = re.compile(
    r"^(?:arxiv:\s*|(?:https?://)?(?:www\.|export\.)?arxiv\.org/(?:abs|pdf)/)",
    re.IGNORECASE,
)

_OSTI_PREFIX_RE = re.compile(
    r"^(?:osti(?:\s*id)?\s*[:#]?\s*|(?:https?://)?(?:www\.)?osti\.gov/(?:biblio|servlets/purl|pages/biblio)/)",
    re.IGNORECASE,
)


def normalize_doi(raw: str) -> str | None:
    if not raw:
        return None
    raw = _DOI_PREFIX_RE.sub("", raw.strip())

    match = _DOI_CLEAN_RE.match(raw)
    if match:
        candidate = match.group("doi")
    else:
        m2 = _DOI_CORE_RE.search(raw)
        if not m2:
            return None
        candidate = m2.group(1)

    candidate = candidate.rstrip(").,;]")
    return candidate.lower()


def normalize_arxiv_id(raw: str) -> str | None:
    """Reduce an arXiv URL, `arXiv:` tag, or bare identifier to the identifier (version suffix kept)."""
    if not raw:
        return None
    value = _ARXIV_PREFIX_RE.sub("", raw.strip())
    value = value.removesuffix(".pdf")
    for pattern in (_ARXIV_NEW_RE, _ARXIV_OLD_RE):
        match = pattern.search(value)
        if match:
            return match.group("id") + (match.group("version") or "")
    return None


def normalize_osti_id(raw: str) -> str | None:
    if not raw:
        return None
    value = _OSTI_PREFIX_RE.sub("", raw.strip())
    match = re.match(r"\d{3,9}", value.strip())
    return match.group(0) if match else None
