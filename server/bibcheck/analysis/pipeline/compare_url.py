from __future__ import annotations

import logging

from server.bibcheck.analysis.pipeline.types import CompareResult

logger = logging.getLogger(__name__)


def compare_url(url: str, citation: str, *, fetcher, documents, comparer) -> CompareResult:
    """Fetch `url`, extract the document's metadata and compare it with `citation`.

    Fetch failures and non-200 responses propagate as `SourceError`; they are
    stage errors, never a negative comparison.
    """
    body, content_type = fetcher.fetch(url)
    logger.info("Fetched %s (%s, %d bytes)", url, content_type or "unknown type", len(body))
    metadata = documents.document_metadata(body, content_type)
    return comparer.compare(metadata.to_comparison_text(), citation)
