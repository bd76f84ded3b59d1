"""Abstract base class for Classification Source connectors."""

from abc import ABC, abstractmethod
from typing import Any

from bizdir.models import JobHandle, RemoteJobStatus


class ClassificationSource(ABC):
    """Abstract interface for the external website classification service."""

    name: str = "base"

    @abstractmethod
    async def submit_website(self, website_url: str) -> JobHandle:
        """
        Submit one website for enrichment and classification.

        Args:
            website_url: The site to classify

        Returns:
            The remote job handle

        Raises:
            SubmissionError: if the source refuses the job
        """
        pass

    @abstractmethod
    async def submit_search_results(self, search_results: list[dict[str, Any]]) -> JobHandle:
        """
        Submit a batch of search hits for per-hit classification.

        Args:
            search_results: Hits as ``{title, link, snippet, displayLink}`` dicts

        Returns:
            The remote job handle

        Raises:
            SubmissionError: if the source refuses the job
        """
        pass

    @abstractmethod
    async def poll(self, remote_job_id: str) -> RemoteJobStatus:
        """
        Fetch the current status of a submitted job. One round trip.

        Raises:
            TransientPollError: if the status could not be fetched
        """
        pass

    async def aclose(self):
        """Release any held resources."""
        return None
