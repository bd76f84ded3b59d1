"""End-to-end enrichment: submit, poll, normalize, resolve, record."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from bizdir.connectors import ClassificationSource
from bizdir.enrich.identity import normalize_website
from bizdir.enrich.normalizer import normalize_batch_verdicts, normalize_payload
from bizdir.enrich.resolver import BusinessResolver, ResolveOutcome
from bizdir.enrich.traceability import TraceabilityRecorder
from bizdir.errors import UnrecognizedShape, ValidationError
from bizdir.jobs import JobPoller, ProgressCallback, ReviewQueue
from bizdir.models import BatchVerdict, EnrichmentJob, JobState, JobTarget
from bizdir.models.database import DBSearchResult

logger = logging.getLogger(__name__)

SEARCH_CLASSIFICATION_SOURCE = "search_classification"


@dataclass
class PipelineOutcome:
    """What happened to one website enrichment request."""

    job: EnrichmentJob
    resolution: Optional[ResolveOutcome] = None
    review_item_id: Optional[int] = None

    @property
    def company_id(self) -> Optional[int]:
        return self.resolution.company_id if self.resolution else None


@dataclass
class VerdictOutcome:
    """Verdict for one search result within a batch run."""

    search_result_id: int
    status: str  # accepted, rejected, error
    confidence: Optional[float] = None
    is_company_website: Optional[bool] = None
    company_name: Optional[str] = None
    website: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    rejection_reason: Optional[str] = None
    error_message: Optional[str] = None
    resolution: Optional[ResolveOutcome] = None

    @property
    def company_id(self) -> Optional[int]:
        return self.resolution.company_id if self.resolution else None


@dataclass
class BatchOutcome:
    """What happened to one classification run over a search session."""

    search_session_id: int
    job: Optional[EnrichmentJob] = None
    processing_session_id: Optional[int] = None
    verdicts: list[VerdictOutcome] = field(default_factory=list)
    review_item_id: Optional[int] = None
    dry_run: bool = False

    def count(self, status: str) -> int:
        return sum(1 for v in self.verdicts if v.status == status)


class EnrichmentPipeline:
    """Runs classification jobs and resolves their results into the directory."""

    def __init__(
        self,
        source: ClassificationSource,
        session_factory: sessionmaker,
        poller: Optional[JobPoller] = None,
        resolver: Optional[BusinessResolver] = None,
        recorder: Optional[TraceabilityRecorder] = None,
        review_queue: Optional[ReviewQueue] = None,
    ):
        self.source = source
        self.poller = poller or JobPoller(source)
        self.resolver = resolver or BusinessResolver(session_factory)
        self.recorder = recorder or TraceabilityRecorder(session_factory)
        self.review_queue = review_queue or ReviewQueue(session_factory)

    async def enrich_website(
        self,
        url: str,
        *,
        min_confidence: Optional[float] = None,
        dry_run: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineOutcome:
        """Classify one website and save it if it is an accepted business."""
        if not url or not url.strip():
            raise ValidationError("website URL must not be empty")
        url = url.strip()

        job = await self.poller.run(JobTarget(website_url=url), on_progress=on_progress)
        if job.state is not JobState.COMPLETED:
            logger.warning(f"Enrichment of {url} ended {job.state.value}: {job.error}")
            return PipelineOutcome(job=job)

        try:
            record = normalize_payload(job.result, fallback_website=url)
        except UnrecognizedShape as e:
            item_id = self.review_queue.add(job, str(e), job.result)
            return PipelineOutcome(job=job, review_item_id=item_id)

        resolution = self.resolver.resolve(
            record,
            min_confidence=min_confidence,
            dry_run=dry_run,
            raw_payload=job.result,
        )
        return PipelineOutcome(job=job, resolution=resolution)

    async def process_search_session(
        self,
        search_session_id: int,
        *,
        min_confidence: Optional[float] = None,
        dry_run: bool = False,
        pending_only: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchOutcome:
        """Classify the results of a search session in one batch job."""
        results = self.recorder.load_search_results(search_session_id, pending_only=pending_only)
        if not results:
            logger.info(f"Search session {search_session_id} has no results to process")
            return BatchOutcome(search_session_id=search_session_id, dry_run=dry_run)

        target = JobTarget(
            search_session_id=str(search_session_id),
            search_results=[_hit(result) for result in results],
        )
        job = await self.poller.run(target, on_progress=on_progress)

        verdicts = None
        failure = None
        review_item_id = None
        if job.state is JobState.COMPLETED:
            try:
                verdicts = normalize_batch_verdicts(job.result)
            except UnrecognizedShape as e:
                review_item_id = self.review_queue.add(job, str(e), job.result)
                failure = str(e)
        else:
            failure = job.error or f"Job {job.state.value}"

        outcome = self.record_verdicts(
            search_session_id,
            results,
            verdicts,
            job=job,
            failure=failure,
            min_confidence=min_confidence,
            dry_run=dry_run,
        )
        outcome.review_item_id = review_item_id
        return outcome

    def record_verdicts(
        self,
        search_session_id: int,
        results: list[DBSearchResult],
        verdicts: Optional[list[BatchVerdict]],
        *,
        job: Optional[EnrichmentJob] = None,
        failure: Optional[str] = None,
        min_confidence: Optional[float] = None,
        dry_run: bool = False,
    ) -> BatchOutcome:
        """Resolve batch verdicts and record one verdict row per search result.

        With ``failure`` set every result gets an error verdict. In dry-run
        mode nothing is written to the directory or the traceability chain.
        """
        processing_id = None
        if not dry_run:
            processing_id = self.recorder.start_processing_session(
                search_session_id, job_id=job.id if job else None
            )

        matched = match_verdicts(results, verdicts or [])
        outcome = BatchOutcome(
            search_session_id=search_session_id,
            job=job,
            processing_session_id=processing_id,
            dry_run=dry_run,
        )

        for result in results:
            verdict_outcome = self._judge(
                result, matched.get(result.id), failure, min_confidence, dry_run
            )
            outcome.verdicts.append(verdict_outcome)
            if processing_id is not None:
                self.recorder.record_verdict(
                    processing_id,
                    result.id,
                    verdict_outcome.status,
                    confidence=verdict_outcome.confidence,
                    is_company_website=verdict_outcome.is_company_website,
                    company_name=verdict_outcome.company_name,
                    website=verdict_outcome.website,
                    categories=verdict_outcome.categories,
                    rejection_reason=verdict_outcome.rejection_reason,
                    error_message=verdict_outcome.error_message,
                    saved_company_id=verdict_outcome.company_id,
                )

        if processing_id is not None:
            self.recorder.complete_processing_session(
                processing_id, status="failed" if failure else "completed"
            )

        logger.info(
            f"Search session {search_session_id}: {outcome.count('accepted')} accepted, "
            f"{outcome.count('rejected')} rejected, {outcome.count('error')} errors"
            f"{' (dry run)' if dry_run else ''}"
        )
        return outcome

    def _judge(
        self,
        result: DBSearchResult,
        verdict: Optional[BatchVerdict],
        failure: Optional[str],
        min_confidence: Optional[float],
        dry_run: bool,
    ) -> VerdictOutcome:
        if failure:
            return VerdictOutcome(search_result_id=result.id, status="error", error_message=failure)
        if verdict is None:
            return VerdictOutcome(
                search_result_id=result.id,
                status="error",
                error_message="No verdict returned for this search result",
            )

        record = verdict.to_record()
        record.company.website = verdict.website or result.url
        resolution = self.resolver.resolve(
            record,
            min_confidence=min_confidence,
            dry_run=dry_run,
            raw_payload=verdict.model_dump(mode="json"),
            source=SEARCH_CLASSIFICATION_SOURCE,
        )

        outcome = VerdictOutcome(
            search_result_id=result.id,
            status="accepted",
            confidence=verdict.confidence,
            is_company_website=verdict.is_company_website,
            company_name=verdict.company_name,
            website=record.company.website,
            categories=list(verdict.categories),
            resolution=resolution,
        )
        if resolution.skipped:
            outcome.status = "rejected"
            outcome.rejection_reason = resolution.skip_reason
        elif not resolution.success:
            outcome.status = "error"
            outcome.error_message = resolution.error
        return outcome


def match_verdicts(
    results: list[DBSearchResult],
    verdicts: list[BatchVerdict],
) -> dict[int, BatchVerdict]:
    """Pair verdicts with search results.

    A verdict matches by website identity first (``extractedFrom`` or
    ``website``), then by explicit position, then by list index. Each verdict
    is used at most once.
    """
    by_identity: dict[str, int] = {}
    by_position: dict[int, int] = {}
    for index, verdict in enumerate(verdicts):
        for url in (verdict.extracted_from, verdict.website):
            identity = normalize_website(url)
            if identity:
                by_identity.setdefault(identity, index)
        if verdict.position is not None:
            by_position.setdefault(verdict.position, index)

    used: set[int] = set()
    matched: dict[int, BatchVerdict] = {}
    for index, result in enumerate(results):
        candidates = (
            by_identity.get(normalize_website(result.url)),
            by_position.get(result.position),
            index if index < len(verdicts) and verdicts[index].position is None else None,
        )
        for candidate in candidates:
            if candidate is not None and candidate not in used:
                used.add(candidate)
                matched[result.id] = verdicts[candidate]
                break
    return matched


def _hit(result: DBSearchResult) -> dict[str, Any]:
    return {
        "title": result.title,
        "url": result.url,
        "displayUrl": result.display_url,
        "snippet": result.snippet,
        "position": result.position,
    }
