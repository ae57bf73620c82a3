"""
Plain-text extraction for word-processing archives.

A .docx file is a zip container; the contract body lives in word/document.xml.
Paragraph boundaries are turned into newlines before the markup is stripped so
separate provisions stay on separate lines for the extraction prompt.
"""

import html
import io
import logging
import re
import zipfile

from ..utils.errors import ExtractionFailed

logger = logging.getLogger(__name__)

DOCUMENT_BODY_PATH = "word/document.xml"

# Opening <w:p> tags only; <w:pPr>, <w:proofErr> and friends are not boundaries
_PARAGRAPH_TAG = re.compile(r"<w:p(?:\s[^>]*)?/?>")
_LINE_BREAK_TAG = re.compile(r"<w:(?:br|cr)(?:\s[^>]*)?/?>")
_TAB_TAG = re.compile(r"<w:tab(?:\s[^>]*)?/?>")
_ANY_TAG = re.compile(r"<[^>]+>")
_NEWLINE_RUN = re.compile(r"\s*\n\s*")
_SPACE_RUN = re.compile(r"[^\S\n]+")


def normalize_document_xml(xml: str) -> str:
    """
    Convert WordprocessingML markup to normalized plain text.

    Args:
        xml: Contents of word/document.xml

    Returns:
        Text with one line per paragraph and single spaces within lines
    """
    text = _PARAGRAPH_TAG.sub("\n", xml)
    text = _LINE_BREAK_TAG.sub("\n", text)
    text = _TAB_TAG.sub(" ", text)
    text = _ANY_TAG.sub("", text)
    text = html.unescape(text)
    text = _NEWLINE_RUN.sub("\n", text)
    text = _SPACE_RUN.sub(" ", text)
    return text.strip()


def extract_docx_text(data: bytes) -> str:
    """
    Extract the body text of a .docx archive.

    Args:
        data: Raw bytes of the zip container

    Returns:
        Normalized text, or an empty string if the archive has no document body

    Raises:
        ExtractionFailed: If the bytes are not a zip archive
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            if DOCUMENT_BODY_PATH not in archive.namelist():
                logger.warning(f"Archive has no {DOCUMENT_BODY_PATH}; extracted text is empty")
                return ""
            xml = archive.read(DOCUMENT_BODY_PATH).decode("utf-8", errors="replace")
    except zipfile.BadZipFile as e:
        raise ExtractionFailed("Document is not a valid archive", {"reason": str(e)})

    text = normalize_document_xml(xml)
    logger.info(f"Extracted {len(text)} characters from document body")
    return text


def decode_text(data: bytes) -> str:
    """Decode raw bytes as UTF-8, replacing undecodable sequences."""
    return data.decode("utf-8", errors="replace")
