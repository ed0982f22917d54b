from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from server.bibcheck.sources.http import HttpClient, SourceError, decode_json

logger = logging.getLogger(__name__)

_HANDLE_API = "https://doi.org/api/handles"

# Handle System response codes.
_RC_SUCCESS = 1
_RC_ERROR = 2
_RC_NOT_FOUND = 100
_RC_NO_VALUES = 200


def _strip_resolver_prefix(doi: str) -> str:
    doi = doi.strip()
    for prefix in ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "http://dx.doi.org/", "doi.org/", "doi:"):
        if doi.lower().startswith(prefix):
            return doi[len(prefix) :].strip()
    return doi


@dataclass
class DoiClient:
    http: HttpClient
    base_url: str = _HANDLE_API

    def resolve(self, doi: str) -> bool:
        """True if the registry knows `doi`, False if it reports the handle does not exist."""
        doi = _strip_resolver_prefix(doi)
        if not doi:
            raise ValueError("Empty DOI")
        logger.info("Resolving DOI %s", doi)
        resp = self.http.request("GET", f"{self.base_url}/{quote(doi, safe='/')}")
        # doi.org answers 404 together with responseCode 100 for unknown handles.
        if resp.status_code == 404:
            try:
                payload = resp.json() or {}
            except ValueError:
                payload = {}
            if payload.get("responseCode") in (None, _RC_NOT_FOUND):
                return False
        payload = decode_json(resp) or {}
        code = payload.get("responseCode")
        if code == _RC_SUCCESS:
            return True
        if code == _RC_NOT_FOUND:
            return False
        message = payload.get("message") or ""
        if code == _RC_ERROR:
            raise SourceError(f"DOI resolution error: {message}")
        if code == _RC_NO_VALUES:
            raise SourceError(f"Values not found for DOI: {doi}")
        raise SourceError(f"Unknown DOI response code {code}: {message}")
