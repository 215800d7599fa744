"""
Document Normalizer
Produces a PDF twin of uploaded images and office documents
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .content_types import KIND_IMAGE, KIND_OFFICE
from .errors import ConversionFailed, ConversionUnavailable, ToolTimeout
from .tools import IMAGEMAGICK, SOFFICE, ToolResolver, ToolRunner

logger = logging.getLogger(__name__)


@dataclass
class NormalizeResult:
    output_path: str
    converted: bool
    error: Optional[str] = None


class DocumentNormalizer:
    """Converts images and office documents to PDF, degrading to the original file"""

    def __init__(self, resolver: ToolResolver = None, runner=None,
                 office_timeout: float = 120, image_timeout: float = 30):
        self.resolver = resolver or ToolResolver()
        self.runner = runner or ToolRunner()
        self.office_timeout = office_timeout
        self.image_timeout = image_timeout

    async def normalize(self, path: str, kind: str) -> NormalizeResult:
        """Convert ``path`` to PDF when ``kind`` needs it; never raises for tool problems"""
        if kind not in (KIND_IMAGE, KIND_OFFICE):
            return NormalizeResult(output_path=path, converted=False)

        try:
            if kind == KIND_OFFICE:
                output_path = await self._convert_office(path)
            else:
                output_path = await self._convert_image(path)
        except (ConversionUnavailable, ConversionFailed, ToolTimeout, OSError) as e:
            logger.warning(f"Conversion of {Path(path).name} to PDF skipped: {e}")
            return NormalizeResult(output_path=path, converted=False, error=str(e))

        self._remove_original(path)
        logger.info(f"Converted {Path(path).name} -> {Path(output_path).name}")
        return NormalizeResult(output_path=output_path, converted=True)

    async def _convert_office(self, path: str) -> str:
        tool = await self.resolver.resolve(SOFFICE)
        if not tool.found:
            raise ConversionUnavailable("LibreOffice (soffice) not found")

        out_dir = str(Path(path).parent)
        result = await self.runner(
            [tool.path, "--headless", "--convert-to", "pdf", "--outdir", out_dir, path],
            timeout=self.office_timeout,
        )
        if not result.ok:
            raise ConversionFailed(f"LibreOffice conversion failed: {result.output()}")

        return self._expect_output(Path(out_dir) / f"{Path(path).stem}.pdf")

    async def _convert_image(self, path: str) -> str:
        tool = await self.resolver.resolve(IMAGEMAGICK)
        if not tool.found:
            raise ConversionUnavailable("ImageMagick not found")

        output = Path(path).with_suffix(".pdf")
        result = await self.runner([tool.path, path, str(output)], timeout=self.image_timeout)
        if not result.ok:
            raise ConversionFailed(f"ImageMagick conversion failed: {result.output()}")

        return self._expect_output(output)

    def _expect_output(self, output: Path) -> str:
        if not output.exists() or output.stat().st_size == 0:
            raise ConversionFailed(f"Converter produced no output at {output.name}")
        return str(output)

    def _remove_original(self, path: str):
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove original {path}: {e}")
