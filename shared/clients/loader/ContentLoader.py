"""Content loader: turns a PDF file or a web page into plain text.

PDF text is extracted with PyMuPDF, web pages are fetched with httpx and
reduced to their body text with BeautifulSoup. Both return normalised text:
whitespace runs collapsed within lines, blank-line runs collapsed, and the
result stripped.
"""

import asyncio
import os
import re

import fitz  # PyMuPDF
import httpx
from bs4 import BeautifulSoup

from shared.exceptions.errors import ExtractionError, ValidationError
from shared.helper.HelperConfig import HelperConfig

_INLINE_WS = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def normalise_text(text: str) -> str:
    """Collapse inline whitespace and blank-line runs, then strip."""
    text = _INLINE_WS.sub(" ", text or "")
    text = "\n".join(line.strip() for line in text.split("\n"))
    return _BLANK_LINES.sub("\n\n", text).strip()


class ContentLoader:
    """Loads document text for ingestion."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.timeout = helper_config.get_number_val("LOADER_TIMEOUT", default=30.0)
        self.user_agent = helper_config.get_string_val("LOADER_USER_AGENT", default="Mozilla/5.0 (compatible; DocChatBot/1.0)")
        self._client: httpx.AsyncClient | None = None

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialise the HTTP client used for web pages."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    ##########################################
    ################ LOADERS #################
    ##########################################

    async def load_pdf(self, path: str) -> str:
        """Extract the text of every page of a PDF.

        Args:
            path (str): Local path of the PDF.

        Returns:
            str: Normalised text, pages separated by a blank line.

        Raises:
            ValidationError: FILE_NOT_FOUND if the path does not exist.
            ExtractionError: If the file cannot be parsed.
        """
        if not os.path.isfile(path):
            raise ValidationError(f"PDF file not found at path: {path}", code="FILE_NOT_FOUND")
        self.logging.info("Loading PDF from: %s", path)
        try:
            text = await asyncio.to_thread(self._read_pdf_text, path)
        except Exception as exc:
            raise ExtractionError(f"Failed to parse PDF: {exc}", code="PDF_PARSE_FAILED", cause=exc) from exc
        return normalise_text(text)

    @staticmethod
    def _read_pdf_text(path: str) -> str:
        with fitz.open(path) as doc:
            return "\n\n".join(page.get_text("text") for page in doc)

    async def load_url(self, url: str) -> str:
        """Fetch a web page and return the text of its body.

        Script, style and noscript elements are dropped before extraction.

        Args:
            url (str): http(s) URL of the page.

        Returns:
            str: Normalised body text.

        Raises:
            ExtractionError: URL_FETCH_FAILED if the page cannot be fetched.
        """
        if self._client is None:
            raise ExtractionError("Content loader not initialised. Call boot() first.", code="URL_FETCH_FAILED")
        self.logging.info("Loading content from URL: %s", url)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExtractionError(
                f"Failed to load URL: {exc}",
                code="URL_FETCH_FAILED",
                cause=exc,
                transient=isinstance(exc, httpx.TimeoutException),
            ) from exc

        soup = BeautifulSoup(response.text, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        root = soup.body or soup
        return normalise_text(root.get_text(separator="\n"))
