# appbuilder/services/parser.py

import logging
from io import BytesIO
from zipfile import BadZipFile
from typing import Optional

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

MAX_BRIEF_CHARS = 6000


def _kind(file_type: str, filename: str) -> str:
    file_type = (file_type or "").lower()
    filename = (filename or "").lower()
    if "pdf" in file_type or filename.endswith(".pdf"):
        return "pdf"
    if "word" in file_type or "docx" in file_type or filename.endswith(".docx"):
        return "docx"
    return "text"


def extract_text_from_bytes(file_bytes: bytes, file_type: str, filename: Optional[str] = None) -> str:
    """
    Turn an uploaded app brief (PDF, DOCX or plain text) into a description
    string for the generator. Unreadable documents yield an empty string.
    """
    if not file_bytes:
        return ""

    kind = _kind(file_type, filename or "")

    if kind == "pdf":
        try:
            reader = PdfReader(BytesIO(file_bytes))
            pages_text = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError) as e:
            logger.warning("Could not read PDF brief %s: %s", filename, e)
            return ""
        return "\n".join(pages_text).strip()

    if kind == "docx":
        try:
            doc = Document(BytesIO(file_bytes))
        except (PackageNotFoundError, BadZipFile, KeyError, ValueError) as e:
            logger.warning("Could not read DOCX brief %s: %s", filename, e)
            return ""
        return "\n".join(p.text for p in doc.paragraphs if p.text).strip()

    return file_bytes.decode("utf-8", errors="ignore").strip()


def brief_to_description(text: str) -> str:
    text = " ".join(text.split())
    return text[:MAX_BRIEF_CHARS]
