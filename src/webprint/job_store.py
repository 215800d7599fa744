"""
Print Job Store
Single source of truth for queued jobs on the server
"""

import logging
from collections import deque
from datetime import timedelta
from typing import Callable, Dict, List, Optional

import aiofiles.os

from .errors import JobNotFound, JobNotPending
from .models import Job, JobStatus, utc_now
from .page_range import format_pages

logger = logging.getLogger(__name__)


class PrintJobStore:
    """
    In-memory FIFO of active jobs plus a bounded history of finished ones.

    The server runs on a single event loop, so methods that never await are
    atomic. Terminal transitions remove the job from the active map before
    the first suspend point; a concurrent second transition sees JobNotFound
    instead of racing the file cleanup.
    """

    def __init__(self, history_limit: int = 100, clock: Callable = utc_now):
        self._jobs: Dict[str, Job] = {}
        self._history = deque(maxlen=history_limit)
        self._clock = clock

    def enqueue(self, job: Job) -> Job:
        self._jobs[job.id] = job
        logger.info(
            f"Job {job.id} queued: {job.original_name} "
            f"(copies={job.settings.copies}, color={job.settings.color}, "
            f"pages={format_pages(job.settings.resolved_pages)})"
        )
        return job

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list_pending(self) -> List[Job]:
        return [job for job in self._jobs.values() if job.status == JobStatus.PENDING]

    def counts(self) -> Dict[str, int]:
        output = {JobStatus.PENDING.value: 0, JobStatus.PRINTING.value: 0}
        for job in self._jobs.values():
            output[job.status.value] += 1
        return output

    def history(self) -> List[Job]:
        return list(self._history)

    def __len__(self) -> int:
        return len(self._jobs)

    def mark_printing(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job.status != JobStatus.PENDING:
            raise JobNotPending(job_id, job.status.value)
        job.status = JobStatus.PRINTING
        logger.info(f"Job {job_id} printing")
        return job

    async def mark_done(self, job_id: str) -> Job:
        job = self._finish(job_id, JobStatus.DONE)
        await self._delete_file(job)
        return job

    async def mark_error(self, job_id: str, reason: str) -> Job:
        job = self._finish(job_id, JobStatus.ERROR, reason)
        await self._delete_file(job)
        return job

    async def expire_stale(self, ttl_seconds: float) -> List[Job]:
        """Move pending jobs older than ``ttl_seconds`` to error"""
        cutoff = self._clock() - timedelta(seconds=ttl_seconds)
        stale = [job.id for job in self.list_pending() if job.created_at < cutoff]

        expired = []
        for job_id in stale:
            try:
                expired.append(await self.mark_error(job_id, f"expired after {ttl_seconds:.0f}s without an agent"))
            except JobNotFound:
                continue
        return expired

    def _finish(self, job_id: str, status: JobStatus, reason: Optional[str] = None) -> Job:
        job = self._jobs.pop(job_id, None)
        if job is None:
            raise JobNotFound(job_id)

        job.status = status
        job.completed_at = self._clock()
        job.error = reason
        self._history.append(job)

        if status == JobStatus.ERROR:
            logger.warning(f"Job {job_id} failed: {reason}")
        else:
            logger.info(f"Job {job_id} done")
        return job

    async def _delete_file(self, job: Job):
        path = job.stored_file_path
        try:
            await aiofiles.os.remove(path)
            logger.debug(f"Deleted {path} (job {job.id})")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete {path} for job {job.id}: {e}")
