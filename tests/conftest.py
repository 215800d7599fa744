from io import BytesIO
from pathlib import Path

import pytest
from pypdf import PdfReader, PdfWriter

from webprint.tools import ToolFound, ToolNotFound, ToolRun


def make_pdf(path, page_count):
    """Blank PDF whose page N is 100 + N points wide, so pages can be told apart"""
    writer = PdfWriter()
    for number in range(1, page_count + 1):
        writer.add_blank_page(width=100 + number, height=200)
    with open(path, "wb") as f:
        writer.write(f)
    return str(path)


def page_numbers(source):
    """Original page numbers of a PDF built by make_pdf (path or bytes)"""
    if isinstance(source, (bytes, bytearray)):
        source = BytesIO(source)
    reader = PdfReader(source)
    return [int(float(page.mediabox.width)) - 100 for page in reader.pages]


class FakeResolver:
    def __init__(self, available=None):
        self.available = dict(available or {})
        self.lookups = []

    async def resolve(self, spec):
        self.lookups.append(spec.name)
        path = self.available.get(spec.name)
        if path:
            return ToolFound(spec.name, path)
        return ToolNotFound(spec.name)


class FakeRunner:
    """
    Records commands; ``results`` is consumed in order (default success).

    ``outputs`` maps a tool path to a callable that receives the command and
    returns the file the real tool would have written.
    """

    def __init__(self, results=None, outputs=None):
        self.results = list(results or [])
        self.outputs = outputs or {}
        self.calls = []

    async def __call__(self, cmd, timeout):
        self.calls.append(list(cmd))
        result = self.results.pop(0) if self.results else ToolRun(0)
        if isinstance(result, Exception):
            raise result
        writer = self.outputs.get(cmd[0])
        if result.ok and writer:
            Path(writer(cmd)).write_bytes(b"%PDF-1.4 converted")
        return result


@pytest.fixture
def pdf_factory(tmp_path):
    def factory(page_count, name="doc.pdf"):
        return make_pdf(tmp_path / name, page_count)
    return factory
