"""Background queue for "send now" requests."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, NotRequired, TypedDict

from digestarr.services.mailer import MailerError
from digestarr.services.newsletter import SendReport, newsletter
from digestarr.services.pipeline import AllSourcesFailedError

logger = logging.getLogger(__name__)

MAX_TRACKED_JOBS = 50


class JobStatus(TypedDict):
    """Structure for send job tracking."""

    id: str
    status: str  # 'queued', 'running', 'sent', 'skipped', 'error'
    created_at: str
    finished_at: NotRequired[str | None]
    recipients: NotRequired[int]
    subject: NotRequired[str | None]
    error: NotRequired[str | None]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class JobManager:
    """Runs queued newsletter sends one at a time on a background worker."""

    def __init__(self, send: Callable[[], Awaitable[SendReport]]) -> None:
        self.queue: asyncio.Queue[str] = asyncio.Queue()
        self.jobs: dict[str, JobStatus] = {}
        self._send = send
        self._worker_task: asyncio.Task[None] | None = None

    async def start_workers(self) -> None:
        """Start the background worker that processes the queue."""
        if self._worker_task is None:
            logger.info("Starting send worker")
            self._worker_task = asyncio.create_task(self._worker())

    async def shutdown(self) -> None:
        """Cancel the worker and wait for it to finish."""
        if self._worker_task is not None:
            self._worker_task.cancel()
            await asyncio.gather(self._worker_task, return_exceptions=True)
            self._worker_task = None

    async def _worker(self) -> None:
        while True:
            job_id = await self.queue.get()
            try:
                await self.run_job(job_id)
            finally:
                self.queue.task_done()

    async def run_job(self, job_id: str) -> None:
        job = self.jobs[job_id]
        job["status"] = "running"
        logger.info("Send job %s started", job_id)
        try:
            report = await self._send()
        except (AllSourcesFailedError, MailerError) as e:
            logger.error("Send job %s failed: %s", job_id, e)
            job["status"] = "error"
            job["error"] = str(e)
        except Exception as e:
            logger.error("Send job %s crashed: %s", job_id, e, exc_info=True)
            job["status"] = "error"
            job["error"] = str(e)
        else:
            job["status"] = report.status
            job["recipients"] = report.recipients
            job["subject"] = report.subject
        job["finished_at"] = _now()

    async def submit(self) -> JobStatus:
        """Queue a send and return its initial status."""
        job_id = str(uuid.uuid4())
        job: JobStatus = {"id": job_id, "status": "queued", "created_at": _now()}
        self.jobs[job_id] = job
        self._prune()
        await self.queue.put(job_id)
        return job

    def get_job(self, job_id: str) -> JobStatus | None:
        return self.jobs.get(job_id)

    def get_all_jobs(self) -> list[JobStatus]:
        return list(self.jobs.values())

    def _prune(self) -> None:
        """Forget the oldest finished jobs once too many are tracked."""
        finished = [
            job_id
            for job_id, job in self.jobs.items()
            if job["status"] not in ("queued", "running")
        ]
        for job_id in finished[: max(0, len(self.jobs) - MAX_TRACKED_JOBS)]:
            del self.jobs[job_id]


manager = JobManager(lambda: newsletter.send())
