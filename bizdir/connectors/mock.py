"""Scripted in-memory Classification Source for testing."""

import itertools
from typing import Any, Optional, Union

from bizdir.errors import SubmissionError, TransientPollError
from bizdir.models import JobHandle, RemoteJobStatus
from .base import ClassificationSource

# A scripted poll step: a status to return, or an exception to raise
PollStep = Union[RemoteJobStatus, Exception]


class MockClassificationSource(ClassificationSource):
    """Returns predefined poll responses in order.

    Each submission gets the next script from ``scripts``; when a script runs
    out its last step repeats.
    """

    name = "mock"

    def __init__(
        self,
        scripts: Optional[list[list[PollStep]]] = None,
        fail_submission: Optional[str] = None,
    ):
        self._scripts = list(scripts or [])
        self._fail_submission = fail_submission
        self._counter = itertools.count(1)
        self._jobs: dict[str, list[PollStep]] = {}
        self.submitted: list[dict[str, Any]] = []
        self.poll_count = 0

    @classmethod
    def completing_with(cls, *results: Any) -> "MockClassificationSource":
        """One script per result: processing once, then completed."""
        return cls([
            [RemoteJobStatus(status="processing", progress=50),
             RemoteJobStatus(status="completed", progress=100, result=result)]
            for result in results
        ])

    async def submit_website(self, website_url: str) -> JobHandle:
        return self._submit({"websiteUrl": website_url})

    async def submit_search_results(self, search_results: list[dict[str, Any]]) -> JobHandle:
        return self._submit({"searchResults": search_results})

    async def poll(self, remote_job_id: str) -> RemoteJobStatus:
        self.poll_count += 1
        steps = self._jobs.get(remote_job_id)
        if steps is None:
            raise TransientPollError(f"Unknown job {remote_job_id}", status_code=404)

        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        return step

    def _submit(self, payload: dict[str, Any]) -> JobHandle:
        if self._fail_submission:
            raise SubmissionError(self._fail_submission)

        job_id = f"mock-{next(self._counter)}"
        script = self._scripts.pop(0) if self._scripts else [RemoteJobStatus(status="queued")]
        self._jobs[job_id] = list(script)
        self.submitted.append(payload)
        return JobHandle(job_id=job_id)
