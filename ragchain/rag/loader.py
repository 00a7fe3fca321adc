"""Document loading for text files, PDFs and web pages.

Handles:
- UTF-8 text extraction
- PDF text extraction (pypdf)
- Web page download and HTML stripping (httpx + BeautifulSoup)
- Source metadata (file name, paths, URL)
"""
import re
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import urlparse
import httpx
import structlog
from bs4 import BeautifulSoup
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ragchain import config
from ragchain.errors import DocumentLoadError, NotFoundError
from ragchain.rag.models import (
    Document,
    SourceKind,
    FILE_NAME,
    FULL_PATH,
    ABSOLUTE_DIRECTORY_PATH,
    URL,
)

logger = structlog.get_logger()

# Elements whose text never belongs in extracted page content
NON_CONTENT_TAGS = ["script", "style", "noscript", "template", "head"]

BLANK_LINES_PATTERN = re.compile(r"\n\s*\n+")


def file_metadata(path: Path) -> Dict[str, str]:
    """Metadata recorded for documents loaded from the filesystem."""
    path = path.resolve()
    return {
        FILE_NAME: path.name,
        FULL_PATH: str(path),
        ABSOLUTE_DIRECTORY_PATH: str(path.parent),
    }


def html_to_text(html: str) -> str:
    """Strip markup from an HTML page, keeping one paragraph per block."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()

    text = soup.get_text(separator="\n")
    lines = [" ".join(line.split()) for line in text.splitlines()]
    text = "\n".join(lines)
    return BLANK_LINES_PATTERN.sub("\n\n", text).strip()


class DocumentLoader:
    """Loads a Document from a file path or URL according to its kind."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the loader.

        Args:
            transport: Optional httpx transport for URL fetching (used by tests)
        """
        self.transport = transport

    def load(self, source: Union[str, Path], kind) -> Document:
        """Load a document.

        Args:
            source: File path (TEXT, PDF) or URL (URL)
            kind: SourceKind or its name

        Returns:
            Document with extracted text and metadata

        Raises:
            UnsupportedSourceKindError: If kind is not recognised
            NotFoundError: If a file source does not exist
            DocumentLoadError: If the source cannot be read or parsed
        """
        kind = SourceKind.parse(kind)

        if kind is SourceKind.URL:
            return self.load_url(str(source))

        path = Path(source)
        if not path.is_file():
            raise NotFoundError("Document", path)

        if kind is SourceKind.PDF:
            return self.load_pdf(path)
        return self.load_text(path)

    def load_text(self, path: Path) -> Document:
        """Read a UTF-8 text file."""
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.error("text_encoding_error", path=str(path), error=str(e))
            raise DocumentLoadError(path, f"not valid UTF-8: {e}") from e
        except OSError as e:
            raise DocumentLoadError(path, str(e)) from e

        logger.debug("text_document_loaded", path=str(path), length=len(text))
        return Document(text=text, metadata=file_metadata(path))

    def load_pdf(self, path: Path) -> Document:
        """Extract text from every page of a PDF."""
        try:
            reader = PdfReader(str(path))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError, OSError) as e:
            logger.error("pdf_parse_error", path=str(path), error=str(e))
            raise DocumentLoadError(path, f"unreadable PDF: {e}") from e

        text = "\n\n".join(page.strip() for page in pages if page.strip())
        logger.debug("pdf_document_loaded", path=str(path), pages=len(pages))
        return Document(text=text, metadata=file_metadata(path))

    def load_url(self, url: str) -> Document:
        """Download a web page and strip its HTML."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise DocumentLoadError(url, "not an http(s) URL")

        try:
            with httpx.Client(
                follow_redirects=True,
                timeout=config.URL_FETCH_TIMEOUT,
                headers={"User-Agent": config.USER_AGENT},
                transport=self.transport,
            ) as client:
                response = client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("url_fetch_failed", url=url, error=str(e))
            raise DocumentLoadError(url, str(e)) from e

        text = html_to_text(response.text)
        logger.info("url_document_loaded", url=url, length=len(text))
        return Document(text=text, metadata={URL: url})
