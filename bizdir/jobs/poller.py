"""Job submission and status polling against the Classification Source."""

import asyncio
import logging
import time
from typing import Callable, Optional

from bizdir.config import settings
from bizdir.connectors import ClassificationSource
from bizdir.errors import SubmissionError, TransientPollError, ValidationError
from bizdir.models import EnrichmentJob, JobState, JobTarget, RemoteJobStatus
from bizdir.models.job import can_transition

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[EnrichmentJob], None]


class JobPoller:
    """Submit jobs and drive them to a terminal state.

    Polls once per ``poll_interval`` until the source reports completed or
    failed, or ``timeout`` elapses. Failed poll round trips are logged and
    polling continues. Cancellation is local: polling stops and the job is
    marked cancelled, the remote job is left alone.
    """

    def __init__(
        self,
        source: ClassificationSource,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.poll_interval = settings.poll_interval if poll_interval is None else poll_interval
        self.timeout = settings.poll_timeout if timeout is None else timeout
        self._clock = clock
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._active: set[str] = set()

    async def run(
        self,
        target: JobTarget,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EnrichmentJob:
        """Submit a job and wait for it to finish."""
        job = await self.submit(target)
        return await self.wait(job, on_progress=on_progress)

    async def submit(self, target: JobTarget) -> EnrichmentJob:
        """Submit a job. A refused submission yields a failed job, not an exception."""
        self._validate(target)
        job = EnrichmentJob(target=target)

        try:
            if target.website_url:
                handle = await self.source.submit_website(target.website_url)
            else:
                handle = await self.source.submit_search_results(target.search_results)
        except SubmissionError as e:
            logger.error(f"[{job.id}] Submission failed for {target.describe()}: {e}")
            job.error = str(e)
            job.advance(JobState.FAILED)
            return job

        job.remote_id = handle.job_id
        job.position = handle.position
        job.estimated_wait_time = handle.estimated_wait_time
        logger.info(f"[{job.id}] Submitted {target.describe()} as remote job {handle.job_id}")
        return job

    async def wait(
        self,
        job: EnrichmentJob,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EnrichmentJob:
        """Poll until the job reaches a terminal state."""
        if job.state.is_terminal:
            return job

        cancel = self._cancel_events.setdefault(job.id, asyncio.Event())
        deadline = self._clock() + self.timeout
        self._active.add(job.id)
        logger.info(
            f"[{job.id}] Polling every {self.poll_interval}s for up to {self.timeout}s"
        )

        try:
            while True:
                if cancel.is_set():
                    self._finish(job, JobState.CANCELLED, "Cancelled before completion")
                    break
                if self._clock() >= deadline:
                    self._finish(job, JobState.TIMED_OUT, f"Job polling timeout after {self.timeout} seconds")
                    break

                try:
                    status = await self.source.poll(job.remote_id)
                except TransientPollError as e:
                    logger.warning(f"[{job.id}] {e}; continuing to poll")
                else:
                    if self._apply(job, status, on_progress):
                        break

                remaining = max(0.0, deadline - self._clock())
                await self._pause(cancel, min(self.poll_interval, remaining))
        except asyncio.CancelledError:
            if not job.state.is_terminal:
                self._finish(job, JobState.CANCELLED, "Polling task cancelled")
            raise
        finally:
            self._active.discard(job.id)
            self._cancel_events.pop(job.id, None)

        return job

    def cancel(self, job: EnrichmentJob) -> bool:
        """Stop polling ``job`` and mark it cancelled. False if already terminal."""
        if job.state.is_terminal:
            return False
        if job.id in self._active:
            self._cancel_events.setdefault(job.id, asyncio.Event()).set()
        else:
            self._finish(job, JobState.CANCELLED, "Cancelled before polling started")
        return True

    def _apply(
        self,
        job: EnrichmentJob,
        status: RemoteJobStatus,
        on_progress: Optional[ProgressCallback],
    ) -> bool:
        """Fold one poll into the job. Returns True once the job is terminal."""
        state = status.state
        if state is JobState.COMPLETED:
            job.result = status.result
            job.progress = 100.0
            self._finish(job, JobState.COMPLETED)
            return True
        if state is JobState.FAILED:
            self._finish(job, JobState.FAILED, f"Job failed: {status.error or 'Unknown error'}")
            return True

        job.apply_hints(status)
        if state is None:
            logger.warning(f"[{job.id}] Unknown remote status {status.status!r}")
        elif can_transition(job.state, state):
            if job.advance(state):
                logger.info(f"[{job.id}] State -> {state.value}")
        else:
            logger.debug(f"[{job.id}] Ignoring remote status {state.value} while {job.state.value}")

        logger.debug(
            f"[{job.id}] In progress: {job.progress:.0f}% position={job.position} "
            f"eta={job.estimated_wait_time}"
        )
        if on_progress is not None:
            try:
                on_progress(job)
            except Exception as e:
                logger.warning(f"[{job.id}] Progress callback failed: {e}")
        return False

    def _finish(self, job: EnrichmentJob, state: JobState, error: Optional[str] = None):
        if error and state is not JobState.COMPLETED:
            job.error = error
        job.advance(state)
        if state is JobState.COMPLETED:
            logger.info(f"[{job.id}] Job completed")
        else:
            logger.warning(f"[{job.id}] Job {state.value}: {job.error}")

    @staticmethod
    async def _pause(cancel: asyncio.Event, seconds: float):
        """Sleep for ``seconds`` or until cancellation, whichever is first."""
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    @staticmethod
    def _validate(target: JobTarget):
        if target.website_url is not None:
            if not target.website_url.strip():
                raise ValidationError("website URL must not be empty")
        elif not target.search_results:
            raise ValidationError("a website URL or a non-empty batch of search results is required")
