"""
Document format routing.

Decides how a stored contract is read before extraction: the declared MIME
type wins, the filename extension covers unreliable upload-time detection, and
everything else is decoded as raw text so no document is rejected outright.
"""

from enum import Enum
from typing import Optional


DEFAULT_MIME_TYPE = "application/octet-stream"


class DocumentFormat(str, Enum):
    """How a document's content is fed to the extraction step."""
    ARCHIVE = "archive"  # zip container with an XML body (.docx)
    PDF = "pdf"          # sent to the completion service as a file
    TEXT = "text"        # raw bytes decoded as text


def resolve_mime_type(
    record_mime_type: Optional[str],
    stored_content_type: Optional[str]
) -> str:
    """Pick the effective MIME type: record first, then blob store, then a generic default."""
    return record_mime_type or stored_content_type or DEFAULT_MIME_TYPE


def route_document(mime_type: Optional[str], filename: Optional[str]) -> DocumentFormat:
    """
    Classify a document into an extraction format.

    Args:
        mime_type: Effective MIME type of the document
        filename: Original filename

    Returns:
        DocumentFormat for the document
    """
    mime = (mime_type or "").lower()
    if "wordprocessingml" in mime:
        return DocumentFormat.ARCHIVE
    if "pdf" in mime:
        return DocumentFormat.PDF

    name = (filename or "").lower()
    if name.endswith(".docx"):
        return DocumentFormat.ARCHIVE
    if name.endswith(".pdf"):
        return DocumentFormat.PDF

    return DocumentFormat.TEXT
