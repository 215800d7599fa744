"""
Print Executor
Grayscale conversion and per-copy print invocation for downloaded jobs
"""

import os
import time
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .content_types import KIND_IMAGE, KIND_PDF, detect_kind
from .errors import ConversionFailed, PrintInvocationFailed, ToolTimeout
from .models import PrintSettings
from .tools import GHOSTSCRIPT, IMAGEMAGICK, LP, MSPAINT, SUMATRA, ToolResolver, ToolRunner


@dataclass
class PrintOutcome:
    success: bool
    copies_requested: int
    copies_printed: int = 0
    grayscale_applied: bool = False
    error: Optional[str] = None


class PrintExecutor:
    """Prints a local file N times, converting it to grayscale first when asked"""

    def __init__(self, config: Dict[str, Any] = None, resolver: ToolResolver = None,
                 runner=None, platform: str = None):
        config = config or {}
        self.logger = logging.getLogger(__name__)
        self.resolver = resolver or ToolResolver()
        self.runner = runner or ToolRunner()
        self.is_windows = (platform or os.name) == "nt"

        self.ghostscript_timeout = config.get("ghostscript_timeout_seconds", 60)
        self.image_timeout = config.get("image_timeout_seconds", 30)
        self.print_timeout = config.get("print_timeout_seconds", 60)

        # Performance tracking
        self.jobs_processed = 0
        self.successful_jobs = 0
        self.total_processing_time = 0.0

    async def execute(self, file_path: str, settings: PrintSettings, job_id: str = "local") -> PrintOutcome:
        """
        Print ``file_path`` ``settings.copies`` times.

        Grayscale is best effort. The first failed invocation stops the
        remaining copies. Derived temporaries are always removed; the caller
        owns ``file_path``.
        """
        start_time = time.time()
        kind = detect_kind(file_path)
        outcome = PrintOutcome(success=False, copies_requested=settings.copies)
        gray_path = None

        try:
            file_to_print = file_path
            if settings.color == "bw":
                gray_path = await self._to_grayscale(file_path, kind)
                if gray_path:
                    file_to_print = gray_path
                    outcome.grayscale_applied = True

            try:
                for copy_index in range(settings.copies):
                    cmd = await self._build_print_command(file_to_print, kind, settings, job_id, copy_index)
                    await self._invoke(cmd)
                    outcome.copies_printed += 1
                outcome.success = True
            except (PrintInvocationFailed, ToolTimeout, OSError) as e:
                outcome.error = str(e)
                self.logger.error(
                    f"Job {job_id}: print failed after {outcome.copies_printed}/{settings.copies} copies: {e}"
                )
        finally:
            if gray_path:
                self._cleanup_temp_file(gray_path)

        processing_time = time.time() - start_time
        self.jobs_processed += 1
        self.total_processing_time += processing_time
        if outcome.success:
            self.successful_jobs += 1

        if self.logger.isEnabledFor(logging.INFO):
            self.logger.info(
                f"Job {job_id} {'printed' if outcome.success else 'failed'}: "
                f"{outcome.copies_printed}/{settings.copies} copies in {processing_time*1000:.0f}ms"
            )
        return outcome

    async def _to_grayscale(self, file_path: str, kind: str) -> Optional[str]:
        """Grayscale twin of ``file_path``, or None to print the original in color"""
        source = Path(file_path)
        output = source.with_name(f"{source.stem}-gray{source.suffix}")

        try:
            if kind == KIND_PDF:
                tool = await self.resolver.resolve(GHOSTSCRIPT)
                if not tool.found:
                    self.logger.warning("Ghostscript not found, printing in color")
                    return None
                cmd = [
                    tool.path,
                    "-dSAFER",
                    "-dBATCH",
                    "-dNOPAUSE",
                    "-sDEVICE=pdfwrite",
                    "-sProcessColorModel=DeviceGray",
                    "-sColorConversionStrategy=Gray",
                    "-dOverrideICC",
                    "-o", str(output),
                    file_path,
                ]
                timeout = self.ghostscript_timeout
            elif kind == KIND_IMAGE:
                tool = await self.resolver.resolve(IMAGEMAGICK)
                if not tool.found:
                    self.logger.warning("ImageMagick not found, printing in color")
                    return None
                cmd = [tool.path, file_path, "-colorspace", "Gray", str(output)]
                timeout = self.image_timeout
            else:
                self.logger.warning(f"No grayscale converter for {source.suffix or 'unknown'} files, printing in color")
                return None

            result = await self.runner(cmd, timeout=timeout)
            if not result.ok:
                raise ConversionFailed(f"{tool.name}: {result.output()}")
            if not output.exists():
                raise ConversionFailed(f"{tool.name} produced no output")

            self.logger.info(f"Converted {source.name} to grayscale via {tool.name}")
            return str(output)

        except (ConversionFailed, ToolTimeout, OSError) as e:
            self.logger.warning(f"Grayscale conversion failed, printing in color: {e}")
            self._cleanup_temp_file(str(output))
            return None

    async def _build_print_command(self, file_path: str, kind: str, settings: PrintSettings,
                                   job_id: str, copy_index: int) -> List[str]:
        printer = (settings.printer or "").strip()

        if not self.is_windows:
            tool = await self.resolver.resolve(LP)
            if not tool.found:
                raise PrintInvocationFailed("CUPS 'lp' command not found")

            title = f"webprint-{job_id}"
            if settings.copies > 1:
                title = f"{title} ({copy_index + 1}/{settings.copies})"

            cmd = [tool.path]
            if printer:
                cmd.extend(["-d", printer])
            cmd.extend(["-t", title, "-o", f"media={settings.paper_size}"])
            if settings.orientation == "landscape":
                cmd.extend(["-o", "landscape"])
            cmd.append(file_path)
            return cmd

        if kind == KIND_PDF:
            tool = await self.resolver.resolve(SUMATRA)
            if tool.found:
                cmd = [tool.path, "-silent"]
                cmd.extend(["-print-to", printer] if printer else ["-print-to-default"])
                cmd.extend(["-print-settings", f"paper={settings.paper_size},{settings.orientation}"])
                cmd.append(file_path)
                return cmd
            self.logger.warning("SumatraPDF not found, using the system default handler")

        elif kind == KIND_IMAGE:
            tool = await self.resolver.resolve(MSPAINT)
            if tool.found:
                cmd = [tool.path, "/pt", file_path]
                if printer:
                    cmd.append(printer)
                return cmd
            self.logger.warning("mspaint not found, using the system default handler")

        return ["cmd", "/c", "start", "/min", "", "/wait", file_path, "/print"]

    async def _invoke(self, cmd: List[str]):
        result = await self.runner(cmd, timeout=self.print_timeout)
        if not result.ok:
            raise PrintInvocationFailed(f"{Path(cmd[0]).name} failed: {result.output()}")

    def _cleanup_temp_file(self, file_path: str):
        """Clean up temporary files safely"""
        try:
            if file_path and os.path.exists(file_path):
                os.unlink(file_path)
        except OSError as e:
            self.logger.warning(f"Failed to cleanup {file_path}: {e}")

    def get_performance_stats(self) -> Dict[str, Any]:
        average = self.total_processing_time / self.jobs_processed if self.jobs_processed else 0.0
        return {
            "jobs_processed": self.jobs_processed,
            "successful_jobs": self.successful_jobs,
            "average_processing_ms": round(average * 1000, 1),
        }
