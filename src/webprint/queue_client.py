"""
Queue Client
HTTP client the print agent uses to talk to the queue server
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import aiofiles
import aiohttp

from . import __version__
from .content_types import download_extension
from .errors import FileGone, JobNotFound

CHUNK_SIZE = 64 * 1024


class QueueClient:
    """
    Thin aiohttp wrapper around the server's dispatch endpoints.

    410 on a file download raises FileGone and 404 on an acknowledgement
    raises JobNotFound; every other HTTP or network failure propagates so the
    caller can abort its current cycle.
    """

    def __init__(self, server_url: str, api_prefix: str = "/api", agent_id: str = None,
                 queue_timeout: float = 15, file_timeout: float = 60):
        self.base_url = f"{server_url.rstrip('/')}{api_prefix}"
        self.agent_id = agent_id
        self.queue_timeout = aiohttp.ClientTimeout(total=queue_timeout, connect=5)
        self.file_timeout = aiohttp.ClientTimeout(total=file_timeout, connect=5)
        self.logger = logging.getLogger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "QueueClient":
        return cls(
            config["server_url"],
            api_prefix=config.get("api_prefix", "/api"),
            agent_id=config.get("agent_id"),
            queue_timeout=config.get("queue_timeout_seconds", 15),
            file_timeout=config.get("file_timeout_seconds", 60),
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(limit=10, ttl_dns_cache=300, keepalive_timeout=60)
            self.session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": f"WebPrintAgent/{__version__}"},
            )
        return self.session

    async def fetch_queue(self) -> List[Dict[str, Any]]:
        session = self._get_session()
        async with session.get(f"{self.base_url}/queue", timeout=self.queue_timeout) as response:
            response.raise_for_status()
            jobs = await response.json()

        if not isinstance(jobs, list):
            self.logger.warning(f"Expected a job list from the server, got {type(jobs).__name__}")
            return []
        return [job for job in jobs if isinstance(job, dict) and "id" in job]

    async def download_file(self, job_id: str, directory: str, fallback_name: str = None) -> str:
        """
        Stream the job's printable artifact into ``directory``.

        The extension follows the response Content-Type, then the job's stored
        file name, then .pdf. Returns the local path.
        """
        session = self._get_session()
        async with session.get(f"{self.base_url}/print-file/{job_id}", timeout=self.file_timeout) as response:
            if response.status == 410:
                raise FileGone(job_id)
            response.raise_for_status()

            extension = download_extension(response.headers.get("Content-Type"), fallback_name)
            destination = os.path.join(directory, f"job_{job_id}{extension}")
            try:
                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
            except (aiohttp.ClientError, asyncio.TimeoutError):
                if os.path.exists(destination):
                    os.unlink(destination)
                raise

        return destination

    async def ack_done(self, job_id: str):
        await self._post_ack(f"{self.base_url}/queue/{job_id}/done", job_id)

    async def report_error(self, job_id: str, reason: str):
        await self._post_ack(f"{self.base_url}/queue/{job_id}/error", job_id, {"reason": reason})

    async def _post_ack(self, url: str, job_id: str, payload: Dict[str, Any] = None):
        session = self._get_session()
        async with session.post(url, json=payload, timeout=self.queue_timeout) as response:
            if response.status == 404:
                raise JobNotFound(job_id)
            response.raise_for_status()

    async def ping(self):
        session = self._get_session()
        payload = {"agentId": self.agent_id} if self.agent_id else {}
        async with session.post(f"{self.base_url}/agent/ping", json=payload, timeout=self.queue_timeout) as response:
            response.raise_for_status()

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
