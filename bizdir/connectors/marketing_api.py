"""HTTP connector for the queue-backed enrichment API."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from bizdir.config import Settings, settings as default_settings
from bizdir.errors import SubmissionError, TransientPollError
from bizdir.models import JobHandle, RemoteJobStatus
from .base import ClassificationSource

logger = logging.getLogger(__name__)


class MarketingApiSource(ClassificationSource):
    """Submit and poll jobs on the enrichment API over HTTP."""

    name = "marketing_api"

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or default_settings
        self.config.require_classification_source()
        self._client = client or httpx.AsyncClient(
            base_url=self.config.classification_api_url,
            headers=self._headers(),
            timeout=httpx.Timeout(
                self.config.read_timeout, connect=self.config.connect_timeout
            ),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self.config.user_agent}
        if self.config.classification_api_token:
            headers["Authorization"] = f"Bearer {self.config.classification_api_token}"
        return headers

    async def submit_website(self, website_url: str) -> JobHandle:
        """Queue a single-site enrichment job."""
        payload = {
            "websiteUrl": website_url,
            "options": {
                "includeStaffEnrichment": False,
                "includeExternalEnrichment": False,
                "includeIntelligence": False,
                "includeTechnologyExtraction": self.config.include_technology_extraction,
                "basicMode": True,
                "maxHtmlLength": self.config.max_html_length,
            },
        }
        return await self._submit(self.config.enrich_endpoint, payload)

    async def submit_search_results(self, search_results: list[dict[str, Any]]) -> JobHandle:
        """Queue a batch classification job over search hits."""
        return await self._submit(self.config.classify_endpoint, {"searchResults": search_results})

    async def poll(self, remote_job_id: str) -> RemoteJobStatus:
        """Fetch job status once."""
        url = self.config.job_status_endpoint.format(job_id=remote_job_id)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise TransientPollError(f"Poll request error: {e}") from e

        if response.status_code >= 400:
            raise TransientPollError(
                f"Poll request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransientPollError(f"Poll response is not JSON: {e}") from e

        return self._parse_status(body)

    async def aclose(self):
        await self._client.aclose()

    async def _submit(self, endpoint: str, payload: dict[str, Any]) -> JobHandle:
        try:
            response = await self._client.post(endpoint, json=payload)
        except httpx.HTTPError as e:
            raise SubmissionError(f"Submission to {endpoint} failed: {e}") from e

        if response.status_code >= 400:
            raise SubmissionError(
                f"API error: {response.status_code} {response.reason_phrase} {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError(f"Submission response is not JSON: {e}") from e

        if not isinstance(body, dict):
            raise SubmissionError("Submission response is not a JSON object")

        job_id = body.get("jobId")
        if not body.get("success", True) or not job_id:
            raise SubmissionError(body.get("error") or body.get("message") or "Failed to submit job")

        logger.info(f"Job submitted: {job_id} ({endpoint})")
        return JobHandle(
            job_id=str(job_id),
            poll_url=body.get("pollUrl"),
            position=body.get("position"),
            estimated_wait_time=body.get("estimatedWaitTime"),
        )

    @staticmethod
    def _parse_status(body: Any) -> RemoteJobStatus:
        """Read ``{status, progress, result?, error?}``, also when nested under ``job``."""
        if not isinstance(body, dict):
            raise TransientPollError("Poll response is not a JSON object")
        if isinstance(body.get("job"), dict):
            body = {**body["job"], "error": body["job"].get("error") or body.get("error")}

        try:
            return RemoteJobStatus(
                status=str(body.get("status") or "unknown"),
                progress=body.get("progress") or 0.0,
                result=body.get("result"),
                error=body.get("error"),
                position=body.get("position"),
                estimated_wait_time=body.get("estimatedWaitTime"),
            )
        except PydanticValidationError as e:
            raise TransientPollError(f"Malformed poll response: {e}") from e
