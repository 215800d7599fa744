import asyncio
from pathlib import Path

from conftest import FakeResolver, FakeRunner
from webprint.errors import ToolTimeout
from webprint.normalizer import DocumentNormalizer
from webprint.tools import ToolRun


def office_output(cmd):
    out_dir = cmd[cmd.index("--outdir") + 1]
    return Path(out_dir) / f"{Path(cmd[-1]).stem}.pdf"


def test_pdf_is_left_alone(tmp_path):
    source = tmp_path / "a.pdf"
    source.write_bytes(b"%PDF")
    runner = FakeRunner()

    result = asyncio.run(DocumentNormalizer(FakeResolver(), runner).normalize(str(source), "pdf"))

    assert result.output_path == str(source)
    assert result.converted is False
    assert runner.calls == []


def test_office_document_converted_and_original_removed(tmp_path):
    source = tmp_path / "report.docx"
    source.write_bytes(b"docx")
    resolver = FakeResolver({"libreoffice": "/usr/bin/soffice"})
    runner = FakeRunner(outputs={"/usr/bin/soffice": office_output})

    result = asyncio.run(DocumentNormalizer(resolver, runner).normalize(str(source), "office"))

    assert result.converted is True
    assert result.output_path == str(tmp_path / "report.pdf")
    assert not source.exists()
    assert runner.calls[0][:4] == ["/usr/bin/soffice", "--headless", "--convert-to", "pdf"]


def test_missing_converter_degrades(tmp_path):
    source = tmp_path / "photo.png"
    source.write_bytes(b"png")

    result = asyncio.run(DocumentNormalizer(FakeResolver(), FakeRunner()).normalize(str(source), "image"))

    assert result.converted is False
    assert result.output_path == str(source)
    assert "ImageMagick" in result.error
    assert source.exists()


def test_failed_conversion_keeps_original(tmp_path):
    source = tmp_path / "slides.pptx"
    source.write_bytes(b"pptx")
    resolver = FakeResolver({"libreoffice": "soffice"})
    runner = FakeRunner(results=[ToolRun(1, stderr="source file could not be loaded")])

    result = asyncio.run(DocumentNormalizer(resolver, runner).normalize(str(source), "office"))

    assert result.converted is False
    assert "could not be loaded" in result.error
    assert source.exists()


def test_conversion_timeout_degrades(tmp_path):
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"jpg")
    resolver = FakeResolver({"imagemagick": "magick"})
    runner = FakeRunner(results=[ToolTimeout("magick timed out after 30s")])

    result = asyncio.run(DocumentNormalizer(resolver, runner).normalize(str(source), "image"))

    assert result.converted is False
    assert "timed out" in result.error


def test_success_without_output_counts_as_failure(tmp_path):
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"jpg")
    resolver = FakeResolver({"imagemagick": "magick"})

    result = asyncio.run(DocumentNormalizer(resolver, FakeRunner()).normalize(str(source), "image"))

    assert result.converted is False
    assert source.exists()
