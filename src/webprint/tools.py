"""
External Tool Resolver
Locates converter and print binaries on demand and runs them with bounded timeouts
"""

import asyncio
import glob
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .errors import ToolTimeout

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 2


@dataclass(frozen=True)
class ToolSpec:
    """How to find one external capability"""
    name: str
    env_var: Optional[str] = None
    candidates: Sequence[str] = ()
    # None means presence on disk is enough (GUI tools have no version switch)
    version_args: Optional[Sequence[str]] = ("--version",)


@dataclass(frozen=True)
class ToolFound:
    name: str
    path: str

    @property
    def found(self) -> bool:
        return True


@dataclass(frozen=True)
class ToolNotFound:
    name: str
    reason: str = "not installed"

    @property
    def found(self) -> bool:
        return False


ToolLookup = Union[ToolFound, ToolNotFound]


@dataclass
class ToolRun:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output(self) -> str:
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        return text or f"exit code {self.returncode}"


SOFFICE = ToolSpec(
    name="libreoffice",
    env_var="SOFFICE_CMD",
    candidates=(
        "soffice",
        "libreoffice",
        r"C:\Program Files\LibreOffice\program\soffice.exe",
        r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
    ),
)

IMAGEMAGICK = ToolSpec(
    name="imagemagick",
    env_var="IMAGEMAGICK_CMD",
    candidates=("magick", "convert"),
    version_args=("-version",),
)

GHOSTSCRIPT = ToolSpec(
    name="ghostscript",
    env_var="GHOSTSCRIPT_CMD",
    candidates=(
        r"C:\Program Files\gs\gs*\bin\gswin64c.exe",
        r"C:\Program Files (x86)\gs\gs*\bin\gswin32c.exe",
        "gswin64c",
        "gswin32c",
        "gs",
    ),
)

SUMATRA = ToolSpec(
    name="sumatrapdf",
    env_var="SUMATRA_CMD",
    candidates=(
        "SumatraPDF.exe",
        r"C:\Program Files\SumatraPDF\SumatraPDF.exe",
        r"C:\Program Files (x86)\SumatraPDF\SumatraPDF.exe",
        os.path.join(os.path.expanduser("~"), "AppData", "Local", "SumatraPDF", "SumatraPDF.exe"),
    ),
    version_args=None,
)

MSPAINT = ToolSpec(name="mspaint", candidates=("mspaint.exe",), version_args=None)

LP = ToolSpec(name="lp", env_var="LP_CMD", candidates=("lp",), version_args=None)


class ToolResolver:
    """
    Resolves a ToolSpec to ToolFound / ToolNotFound.

    Nothing is cached: tools may be installed or removed while the service runs,
    so every lookup probes again.
    """

    async def resolve(self, spec: ToolSpec) -> ToolLookup:
        if spec.env_var:
            override = os.environ.get(spec.env_var)
            if override and os.path.exists(override):
                return ToolFound(spec.name, override)

        for candidate in self._expand_candidates(spec.candidates):
            if await self._probe(candidate, spec.version_args):
                return ToolFound(spec.name, candidate)

        logger.debug(f"{spec.name} not found")
        return ToolNotFound(spec.name)

    def _expand_candidates(self, candidates: Sequence[str]) -> List[str]:
        expanded: List[str] = []
        for candidate in candidates:
            if "*" in candidate:
                expanded.extend(sorted(glob.glob(candidate), reverse=True))
            elif os.path.isabs(candidate):
                if os.path.exists(candidate):
                    expanded.append(candidate)
            else:
                located = shutil.which(candidate)
                if located:
                    expanded.append(located)
        return expanded

    async def _probe(self, path: str, version_args: Optional[Sequence[str]]) -> bool:
        if version_args is None:
            return True
        try:
            process = await asyncio.create_subprocess_exec(
                path, *version_args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await asyncio.wait_for(process.communicate(), timeout=PROBE_TIMEOUT)
            return process.returncode == 0
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return False
        except OSError:
            return False


@dataclass
class ToolRunner:
    """Runs an external command, killing it once the timeout elapses"""
    creationflags: int = field(
        default_factory=lambda: subprocess.CREATE_NO_WINDOW if os.name == "nt" else 0
    )

    async def __call__(self, cmd: Sequence[str], timeout: float) -> ToolRun:
        logger.debug(f"Running: {' '.join(str(part) for part in cmd)}")
        process = await asyncio.create_subprocess_exec(
            *[str(part) for part in cmd],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            creationflags=self.creationflags,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            try:
                await asyncio.wait_for(process.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning(f"{Path(str(cmd[0])).name} did not exit after kill")
            raise ToolTimeout(f"{Path(str(cmd[0])).name} timed out after {timeout}s")

        return ToolRun(
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
