"""
Page Subset Extractor
Builds a PDF containing only the requested pages of a document
"""

import logging
import os
import tempfile
from io import BytesIO
from typing import Iterable, List, Optional

import aiofiles
from pypdf import PdfReader, PdfWriter

logger = logging.getLogger(__name__)


def _zero_based(pages: Iterable[int], page_count: int) -> List[int]:
    """Sorted, de-duplicated 0-based indexes that exist in the document"""
    return [page - 1 for page in sorted(set(pages)) if 1 <= page <= page_count]


async def _load(pdf_path: str) -> PdfReader:
    async with aiofiles.open(pdf_path, "rb") as input_file:
        content = await input_file.read()
    return PdfReader(BytesIO(content))


async def count_pages(pdf_path: str) -> int:
    reader = await _load(pdf_path)
    return len(reader.pages)


async def subset_bytes(pdf_path: str, pages: Iterable[int]) -> Optional[bytes]:
    """
    Render the selected pages into an in-memory PDF.

    Pages outside the loaded document are dropped. Returns None when no page
    survives, so the caller can fall back to the full document.
    """
    reader = await _load(pdf_path)
    indexes = _zero_based(pages, len(reader.pages))
    if not indexes:
        logger.warning(f"No requested page exists in {os.path.basename(pdf_path)}; using full document")
        return None

    writer = PdfWriter()
    for index in indexes:
        writer.add_page(reader.pages[index])

    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


async def extract_pages(pdf_path: str, pages: Iterable[int], output_dir: Optional[str] = None) -> str:
    """
    Write the selected pages to a new temporary PDF and return its path.

    Returns ``pdf_path`` itself when the filtered selection is empty.
    """
    data = await subset_bytes(pdf_path, pages)
    if data is None:
        return pdf_path

    output_file = tempfile.NamedTemporaryFile(
        suffix="_subset.pdf",
        delete=False,
        prefix="subset_",
        dir=output_dir,
    )
    output_file.close()

    async with aiofiles.open(output_file.name, "wb") as f:
        await f.write(data)

    return output_file.name
