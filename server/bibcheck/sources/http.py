from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

CONTENT_TYPE_PDF = "application/pdf"
CONTENT_TYPE_HTML = "text/html"
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}
DEFAULT_FETCH_MAX_BYTES = 20 * 1024 * 1024
_FETCH_CHUNK_BYTES = 64 * 1024


class SourceError(RuntimeError):
    """A source could not be queried: network failure, timeout, non-2xx status, or bad payload."""


@dataclass
class HttpClient:
    user_agent: str = "bibcheck/0.1"
    timeout_seconds: float = 20.0
    _session_local: threading.local = field(default_factory=threading.local, init=False, repr=False)

    def _client(self) -> requests.Session:
        session = getattr(self._session_local, "session", None)
        if session is None:
            session = requests.Session()
            self._session_local.session = session
        return session

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict | None = None,
        json_body: dict | None = None,
        stream: bool = False,
    ) -> requests.Response:
        try:
            return self._client().request(
                method,
                url,
                headers=self._headers(headers),
                params=params,
                json=json_body,
                timeout=self.timeout_seconds,
                stream=stream,
            )
        except requests.RequestException as e:
            raise SourceError(f"{method} {url} failed: {e}") from e

    def get_json(self, url: str, *, headers: dict[str, str] | None = None, params: dict | None = None):
        resp = self.request("GET", url, headers=headers, params=params)
        return decode_json(resp)


def raise_for_status(resp: requests.Response) -> None:
    if resp.status_code >= 400:
        raise SourceError(f"HTTP {resp.status_code} from {resp.url}")


def decode_json(resp: requests.Response):
    raise_for_status(resp)
    try:
        return resp.json()
    except ValueError as e:
        raise SourceError(f"Invalid JSON from {resp.url}") from e


def sniff_content_type(body: bytes) -> str:
    head = body[:1024].lstrip()
    if head.startswith(b"%PDF-"):
        return CONTENT_TYPE_PDF
    lowered = head[:256].lower()
    if lowered.startswith(b"<!doctype html") or lowered.startswith(b"<html") or b"<head" in lowered:
        return CONTENT_TYPE_HTML
    if lowered.startswith(b"<?xml"):
        return "text/xml"
    return "application/octet-stream"


def _read_body(resp: requests.Response, url: str, max_bytes: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    try:
        for chunk in resp.iter_content(chunk_size=_FETCH_CHUNK_BYTES):
            if not chunk:
                continue
            total += len(chunk)
            if total > max_bytes:
                raise SourceError(f"Response from {url} is larger than {max_bytes} bytes")
            chunks.append(chunk)
    except requests.RequestException as e:
        raise SourceError(f"GET {url} failed while reading the body: {e}") from e
    return b"".join(chunks)


def fetch_url(client: HttpClient, url: str, *, max_bytes: int = DEFAULT_FETCH_MAX_BYTES) -> tuple[bytes, str]:
    """Download `url` once; returns (body, content type).

    `client.timeout_seconds` bounds the whole download, not just each socket
    read, and bodies over `max_bytes` are rejected. Any status other than 200,
    an overrun of either limit, or a transport failure is a `SourceError`.
    """
    logger.info("GET %s", url)
    deadline = time.monotonic() + client.timeout_seconds
    resp = client.request("GET", url, stream=True)
    ex = ThreadPoolExecutor(max_workers=1)
    try:
        if resp.status_code != 200:
            raise SourceError(f"HTTP {resp.status_code} from {url}")
        fut = ex.submit(_read_body, resp, url, max_bytes)
        try:
            body = fut.result(timeout=max(0.0, deadline - time.monotonic()))
        except FuturesTimeout as e:
            raise SourceError(f"GET {url} did not finish within {client.timeout_seconds:g}s") from e
    finally:
        # A reader still blocked on the socket is abandoned, not joined.
        ex.shutdown(wait=False, cancel_futures=True)
        resp.close()
    content_type = (resp.headers.get("Content-Type") or "").split(";", 1)[0].strip().lower()
    if content_type in _GENERIC_CONTENT_TYPES:
        content_type = sniff_content_type(body)
    return body, content_type


@dataclass
class UrlFetcher:
    client: HttpClient
    max_bytes: int = DEFAULT_FETCH_MAX_BYTES

    def fetch(self, url: str) -> tuple[bytes, str]:
        return fetch_url(self.client, url, max_bytes=self.max_bytes)
