"""
Job Manager
Polls the queue server, prints each job once and reports it back
"""

import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, Optional

import aiohttp
from pydantic import ValidationError

from .errors import FileGone, JobNotFound, WebPrintError
from .models import PrintSettings


class ClaimTracker:
    """Job ids this agent already picked up, remembered for a fixed window"""

    def __init__(self, window_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._claims: Dict[str, float] = {}

    def is_claimed(self, job_id: str) -> bool:
        claimed_at = self._claims.get(job_id)
        if claimed_at is None:
            return False
        if self._clock() - claimed_at >= self.window_seconds:
            del self._claims[job_id]
            return False
        return True

    def claim(self, job_id: str):
        self._claims[job_id] = self._clock()

    def purge(self) -> int:
        now = self._clock()
        expired = [job_id for job_id, claimed_at in self._claims.items() if now - claimed_at >= self.window_seconds]
        for job_id in expired:
            del self._claims[job_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._claims)


class JobManager:
    """Fixed-interval poller; a tick that overlaps a running one is skipped"""

    def __init__(self, config: Dict[str, Any], client, print_executor, claims: Optional[ClaimTracker] = None):
        self.config = config
        self.client = client
        self.print_executor = print_executor
        self.claims = claims or ClaimTracker(config.get("claim_window_seconds", 60))
        self.logger = logging.getLogger(__name__)

        # State management
        self.running = False
        self._busy = False
        self._tick_tasks = set()

        # Polling configuration
        self.poll_interval = config.get("poll_interval", 5)
        self.heartbeat_interval = config.get("heartbeat_interval") or self.poll_interval
        self.report_print_errors = config.get("report_print_errors", False)
        self.download_directory = config.get("download_directory") or "."

        # Performance tracking
        self.total_polls = 0
        self.skipped_ticks = 0
        self.jobs_processed = 0
        self.jobs_failed = 0
        self.consecutive_errors = 0
        self.last_successful_contact = 0

    async def tick(self) -> bool:
        """Run one poll cycle unless one is already in flight; False when skipped"""
        if self._busy:
            self.skipped_ticks += 1
            self.logger.debug("Previous poll still running, skipping tick")
            return False

        self._busy = True
        try:
            await self.process_cycle()
            self.consecutive_errors = 0
            self.last_successful_contact = time.time()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.consecutive_errors += 1
            self.logger.warning(f"Poll cycle aborted (#{self.consecutive_errors}): {str(e) or type(e).__name__}")
        except (WebPrintError, OSError, ValidationError) as e:
            self.consecutive_errors += 1
            self.logger.error(f"Poll cycle aborted (#{self.consecutive_errors}): {e}")
        finally:
            self._busy = False
            self.total_polls += 1
        return True

    async def process_cycle(self) -> int:
        """
        Fetch pending jobs and print every one not claimed in the current window.

        Jobs are handled one after another. Transport errors propagate and end
        the cycle; the jobs already claimed stay claimed until the window lapses.
        """
        self.claims.purge()
        jobs = await self.client.fetch_queue()

        printed = 0
        for job in jobs:
            job_id = str(job["id"])
            if self.claims.is_claimed(job_id):
                continue

            self.claims.claim(job_id)
            self.logger.info(f"Claimed job {job_id} ({job.get('originalName', 'unnamed')})")
            if await self._process_job(job_id, job):
                printed += 1
        return printed

    async def _process_job(self, job_id: str, job: Dict[str, Any]) -> bool:
        settings = PrintSettings.model_validate(job.get("settings") or {})
        local_path = None

        try:
            try:
                local_path = await self.client.download_file(
                    job_id, self.download_directory, job.get("storedFileName")
                )
            except FileGone:
                self.logger.warning(f"Job {job_id}: file no longer on the server, skipping")
                return False

            outcome = await self.print_executor.execute(local_path, settings, job_id)
            if outcome.success:
                self.jobs_processed += 1
            else:
                self.jobs_failed += 1

            await self._acknowledge(job_id, outcome)
            return True

        finally:
            if local_path:
                self._remove_local_file(local_path)

    async def _acknowledge(self, job_id: str, outcome):
        try:
            if outcome.success or not self.report_print_errors:
                await self.client.ack_done(job_id)
                self.logger.info(f"Job {job_id} reported done")
            else:
                await self.client.report_error(job_id, outcome.error or "print failed")
                self.logger.info(f"Job {job_id} reported as failed")
        except JobNotFound:
            self.logger.warning(f"Job {job_id} was already finished on the server")

    def _remove_local_file(self, path: str):
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Failed to delete downloaded file {path}: {e}")

    async def start_processing(self):
        """Fire a poll tick every poll_interval seconds until stopped"""
        self.running = True
        self.logger.info(f"Starting job polling every {self.poll_interval}s against {self.config.get('server_url')}")

        try:
            while self.running:
                task = asyncio.create_task(self.tick(), name="poll_tick")
                self._tick_tasks.add(task)
                task.add_done_callback(self._tick_tasks.discard)
                await asyncio.sleep(self.poll_interval)
        finally:
            for task in list(self._tick_tasks):
                task.cancel()
            if self._tick_tasks:
                await asyncio.gather(*self._tick_tasks, return_exceptions=True)
            self.logger.info("Job polling stopped")

    async def heartbeat_loop(self):
        """Ping the server independently of polling so long prints keep the agent online"""
        self.running = True
        while self.running:
            try:
                await self.client.ping()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.warning(f"Heartbeat failed: {str(e) or type(e).__name__}")
            await asyncio.sleep(self.heartbeat_interval)

    def stop_processing(self):
        self.running = False

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "busy": self._busy,
            "total_polls": self.total_polls,
            "skipped_ticks": self.skipped_ticks,
            "jobs_processed": self.jobs_processed,
            "jobs_failed": self.jobs_failed,
            "active_claims": len(self.claims),
            "consecutive_errors": self.consecutive_errors,
            "last_successful_contact": self.last_successful_contact,
        }
