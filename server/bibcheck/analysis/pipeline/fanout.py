from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, wait

from server.bibcheck.analysis.pipeline.types import Extraction

logger = logging.getLogger(__name__)

_PARSE_METHODS = {
    "doi": "parse_doi",
    "arxiv": "parse_arxiv",
    "osti": "parse_osti",
    "url": "parse_url",
    "authors": "parse_authors",
    "title": "parse_title",
    "venue": "parse_venue",
    "kind": "classify",
}


def describe_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def extract_fields(
    text: str,
    parser: object,
    kinds: Iterable[str],
    *,
    timeout_seconds: float = 30.0,
    max_workers: int = 8,
) -> dict[str, Extraction]:
    """Run one extraction per kind concurrently and join them on a single deadline.

    Every requested kind gets an `Extraction`: a value, or an error string when
    the call raised or was still running at the deadline. One failure never
    affects the others.
    """
    kinds = list(dict.fromkeys(kinds))
    for kind in kinds:
        if kind not in _PARSE_METHODS:
            raise ValueError(f"Unknown extraction kind: {kind!r}")
    if not kinds:
        return {}

    ex = ThreadPoolExecutor(max_workers=max(1, min(int(max_workers), len(kinds))))
    try:
        futures = {kind: ex.submit(getattr(parser, _PARSE_METHODS[kind]), text) for kind in kinds}
        done, _ = wait(futures.values(), timeout=timeout_seconds)
    finally:
        # Tasks still running at the deadline are abandoned, not joined.
        ex.shutdown(wait=False, cancel_futures=True)

    out: dict[str, Extraction] = {}
    for kind, fut in futures.items():
        if fut not in done:
            logger.warning("Extraction of %s timed out after %gs", kind, timeout_seconds)
            out[kind] = Extraction(error=f"timed out after {timeout_seconds:g}s")
            continue
        exc = fut.exception()
        if exc is not None:
            logger.warning("Extraction of %s failed: %s", kind, exc)
            out[kind] = Extraction(error=describe_error(exc))
            continue
        value = fut.result()
        out[kind] = Extraction(value="" if value is None else value)
    return out
