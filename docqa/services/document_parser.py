"""
Document Parser Service
Extracts page-structured text from uploaded binary documents using unstructured.io.
"""
import asyncio
import io
from typing import Dict, List
import magic
import structlog

from unstructured.documents.elements import Element
from unstructured.partition.pdf import partition_pdf

from docqa.exceptions import InvalidRequest

logger = structlog.get_logger()


class DocumentParser:
    """Turns a PDF upload into plain text ready for chunking."""

    SUPPORTED_TYPES = {
        "application/pdf": "pdf",
    }

    def detect_file_type(self, data: bytes) -> str:
        """
        Detect file type from content using python-magic.

        Raises:
            InvalidRequest: If the payload is empty or not a supported type
        """
        if not data:
            raise InvalidRequest("PDF file required")

        mime_type = magic.from_buffer(data, mime=True)
        logger.info("Detected file type", mime_type=mime_type)

        if mime_type not in self.SUPPORTED_TYPES:
            raise InvalidRequest(
                f"Unsupported file type: {mime_type}. "
                f"Supported types: {list(self.SUPPORTED_TYPES.values())}"
            )
        return self.SUPPORTED_TYPES[mime_type]

    async def extract_text(self, data: bytes) -> str:
        """
        Extract text page by page: elements within a page are joined by
        single spaces, pages are joined by newlines.
        """
        self.detect_file_type(data)

        try:
            elements = await asyncio.to_thread(
                partition_pdf, file=io.BytesIO(data), strategy="fast"
            )
        except Exception as e:
            logger.error("Failed to parse document", error=str(e))
            raise InvalidRequest(f"Could not read PDF: {e}") from e

        text = self.join_pages(elements)
        logger.info("Document parsed successfully", element_count=len(elements), characters=len(text))
        return text

    def join_pages(self, elements: List[Element]) -> str:
        pages: Dict[int, List[str]] = {}
        for el in elements:
            text = self.get_element_text(el).strip()
            if not text:
                continue
            page_number = getattr(el.metadata, "page_number", None) or 1
            pages.setdefault(page_number, []).append(text)

        return "\n".join(" ".join(pages[number]) for number in sorted(pages))

    def get_element_text(self, element: Element) -> str:
        if hasattr(element, "text"):
            return str(element.text or "")
        return str(element)
