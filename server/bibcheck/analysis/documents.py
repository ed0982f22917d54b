from __future__ import annotations

import os
import tempfile
from pathlib import Path

from server.bibcheck.sources.http import CONTENT_TYPE_HTML, CONTENT_TYPE_PDF


def content_kind(content_type: str) -> str | None:
    """Map a MIME type to the document kinds we can read: "pdf", "html", or None."""
    content_type = (content_type or "").lower()
    if CONTENT_TYPE_PDF in content_type:
        return "pdf"
    if CONTENT_TYPE_HTML in content_type or "application/xhtml" in content_type:
        return "html"
    return None


def extract_markitdown_text(path: Path) -> str:
    """Extract document text via MarkItDown."""
    try:
        from markitdown import MarkItDown  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("MarkItDown is required for text extraction (pip install 'markitdown[all]').") from e

    converter = MarkItDown()
    result = converter.convert(str(path))
    text = getattr(result, "text_content", None)
    if not isinstance(text, str) or not text.strip():
        raise RuntimeError("MarkItDown produced empty text.")
    return text


def document_text(body: bytes, content_type: str) -> str:
    """Convert a fetched PDF or HTML body to plain text."""
    kind = content_kind(content_type)
    if kind is None:
        raise ValueError(f"unexpected content type: {content_type}")
    fd, name = tempfile.mkstemp(suffix=f".{kind}")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(body)
        return extract_markitdown_text(path)
    finally:
        try:
            path.unlink()
        except OSError:
            pass
