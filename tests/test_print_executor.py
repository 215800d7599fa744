import asyncio
from pathlib import Path

from conftest import FakeResolver, FakeRunner
from webprint.models import PrintSettings
from webprint.print_executor import PrintExecutor
from webprint.tools import ToolRun


def gs_output(cmd):
    return cmd[cmd.index("-o") + 1]


def magick_output(cmd):
    return cmd[-1]


def make_file(tmp_path, name="job.pdf"):
    path = tmp_path / name
    path.write_bytes(b"%PDF-1.4")
    return str(path)


def test_posix_prints_each_copy_with_lp(tmp_path):
    path = make_file(tmp_path)
    runner = FakeRunner()
    executor = PrintExecutor(resolver=FakeResolver({"lp": "/usr/bin/lp"}), runner=runner, platform="posix")
    settings = PrintSettings(copies=3, color="color", printer="Office", orientation="landscape", paper_size="A3")

    outcome = asyncio.run(executor.execute(path, settings, "abc"))

    assert outcome.success
    assert outcome.copies_printed == 3
    assert len(runner.calls) == 3
    for cmd in runner.calls:
        assert cmd[0] == "/usr/bin/lp"
        assert cmd[cmd.index("-d") + 1] == "Office"
        assert "media=A3" in cmd
        assert "landscape" in cmd
        assert cmd[-1] == path
    assert "(2/3)" in runner.calls[1][runner.calls[1].index("-t") + 1]


def test_default_printer_omits_destination(tmp_path):
    path = make_file(tmp_path)
    runner = FakeRunner()
    executor = PrintExecutor(resolver=FakeResolver({"lp": "lp"}), runner=runner, platform="posix")

    asyncio.run(executor.execute(path, PrintSettings(color="color"), "abc"))

    assert "-d" not in runner.calls[0]
    assert "landscape" not in runner.calls[0]


def test_failed_invocation_aborts_remaining_copies(tmp_path):
    path = make_file(tmp_path)
    runner = FakeRunner(results=[ToolRun(0), ToolRun(1, stderr="printer offline")])
    executor = PrintExecutor(resolver=FakeResolver({"lp": "lp"}), runner=runner, platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(copies=4, color="color"), "abc"))

    assert not outcome.success
    assert outcome.copies_printed == 1
    assert "printer offline" in outcome.error
    assert len(runner.calls) == 2


def test_missing_lp_reports_failure(tmp_path):
    path = make_file(tmp_path)
    executor = PrintExecutor(resolver=FakeResolver(), runner=FakeRunner(), platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(color="color"), "abc"))

    assert not outcome.success
    assert "lp" in outcome.error


def test_bw_pdf_prints_grayscale_copy_and_cleans_it_up(tmp_path):
    path = make_file(tmp_path)
    resolver = FakeResolver({"ghostscript": "gs", "lp": "lp"})
    runner = FakeRunner(outputs={"gs": gs_output})
    executor = PrintExecutor(resolver=resolver, runner=runner, platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(copies=2, color="bw"), "abc"))

    gray_path = str(tmp_path / "job-gray.pdf")
    assert outcome.success
    assert outcome.grayscale_applied
    assert "-sColorConversionStrategy=Gray" in runner.calls[0]
    assert [cmd[-1] for cmd in runner.calls[1:]] == [gray_path, gray_path]
    assert not Path(gray_path).exists()
    assert Path(path).exists()


def test_bw_falls_back_to_color_when_ghostscript_missing(tmp_path):
    path = make_file(tmp_path)
    runner = FakeRunner()
    executor = PrintExecutor(resolver=FakeResolver({"lp": "lp"}), runner=runner, platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(color="bw"), "abc"))

    assert outcome.success
    assert not outcome.grayscale_applied
    assert runner.calls[0][-1] == path


def test_bw_falls_back_when_conversion_fails(tmp_path):
    path = make_file(tmp_path, "photo.png")
    resolver = FakeResolver({"imagemagick": "magick", "lp": "lp"})
    runner = FakeRunner(results=[ToolRun(1, stderr="bad image")])
    executor = PrintExecutor(resolver=resolver, runner=runner, platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(color="bw"), "abc"))

    assert outcome.success
    assert not outcome.grayscale_applied
    assert runner.calls[-1][-1] == path


def test_bw_image_uses_imagemagick(tmp_path):
    path = make_file(tmp_path, "photo.png")
    resolver = FakeResolver({"imagemagick": "magick", "lp": "lp"})
    runner = FakeRunner(outputs={"magick": magick_output})
    executor = PrintExecutor(resolver=resolver, runner=runner, platform="posix")

    outcome = asyncio.run(executor.execute(path, PrintSettings(color="bw"), "abc"))

    assert outcome.grayscale_applied
    assert runner.calls[0] == ["magick", path, "-colorspace", "Gray", str(tmp_path / "photo-gray.png")]


def test_windows_pdf_uses_sumatra(tmp_path):
    path = make_file(tmp_path)
    runner = FakeRunner()
    resolver = FakeResolver({"sumatrapdf": "SumatraPDF.exe"})
    executor = PrintExecutor(resolver=resolver, runner=runner, platform="nt")

    asyncio.run(executor.execute(path, PrintSettings(color="color", printer="HP"), "abc"))
    asyncio.run(executor.execute(path, PrintSettings(color="color", orientation="landscape"), "abc"))

    named, default = runner.calls
    assert named[:4] == ["SumatraPDF.exe", "-silent", "-print-to", "HP"]
    assert "-print-to-default" in default
    assert default[default.index("-print-settings") + 1] == "paper=A4,landscape"


def test_windows_image_uses_mspaint(tmp_path):
    path = make_file(tmp_path, "photo.jpg")
    runner = FakeRunner()
    executor = PrintExecutor(resolver=FakeResolver({"mspaint": "mspaint.exe"}), runner=runner, platform="nt")

    asyncio.run(executor.execute(path, PrintSettings(color="color", printer="HP"), "abc"))

    assert runner.calls[0] == ["mspaint.exe", "/pt", path, "HP"]


def test_windows_falls_back_to_default_handler(tmp_path):
    path = make_file(tmp_path, "notes.docx")
    runner = FakeRunner()
    executor = PrintExecutor(resolver=FakeResolver(), runner=runner, platform="nt")

    outcome = asyncio.run(executor.execute(path, PrintSettings(color="color"), "abc"))

    assert outcome.success
    assert runner.calls[0] == ["cmd", "/c", "start", "/min", "", "/wait", path, "/print"]
