"""Traceability chain: search session -> results -> processing runs -> verdicts -> company."""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from bizdir.config import settings
from bizdir.errors import ValidationError
from bizdir.models.database import (
    DBCompany,
    DBLLMProcessingResult,
    DBLLMProcessingSession,
    DBSearchResult,
    DBSearchSession,
)

logger = logging.getLogger(__name__)

VERDICT_STATUSES = ("accepted", "rejected", "error")


class TraceabilityRecorder:
    """Append-only recorder for the search to company chain.

    Verdicts are never updated. Reprocessing a search session opens a new
    processing session and writes new verdicts under it.
    """

    def __init__(self, session_factory: sessionmaker, reuse_window: Optional[float] = None):
        self.session_factory = session_factory
        self.reuse_window = (
            settings.search_session_reuse_window if reuse_window is None else reuse_window
        )

    def create_search_session(
        self,
        queries: list[str],
        industry: Optional[str] = None,
        location: Optional[str] = None,
        city: Optional[str] = None,
        state_province: Optional[str] = None,
        country: Optional[str] = None,
        results_limit: int = 10,
    ) -> int:
        """Create a search session, or return an identical one created moments ago."""
        queries = [q.strip() for q in queries if q and q.strip()]
        if not queries:
            raise ValidationError("a search session needs at least one non-empty query")

        context = dict(
            industry=industry,
            location=location,
            city=city,
            state_province=state_province,
            country=country,
            results_limit=results_limit,
        )
        with self.session_factory() as session:
            cutoff = datetime.utcnow() - timedelta(seconds=self.reuse_window)
            recent = (
                session.query(DBSearchSession)
                .filter(DBSearchSession.created_at >= cutoff)
                .filter(DBSearchSession.search_queries == json.dumps(queries))
                .order_by(DBSearchSession.created_at.desc())
                .all()
            )
            for candidate in recent:
                if all(getattr(candidate, key) == value for key, value in context.items()):
                    logger.info(f"Reusing search session {candidate.id} created at {candidate.created_at}")
                    return candidate.id

            search_session = DBSearchSession(query=queries[0], **context)
            search_session.set_search_queries(queries)
            session.add(search_session)
            session.commit()
            logger.info(f"Created search session {search_session.id} for {len(queries)} queries")
            return search_session.id

    def add_search_results(self, search_session_id: int, results: list[dict[str, Any]]) -> list[int]:
        """Store search hits. Each needs a ``title`` and ``url``; position defaults to order."""
        with self.session_factory() as session:
            search_session = session.get(DBSearchSession, search_session_id)
            if search_session is None:
                raise ValidationError(f"search session {search_session_id} does not exist")

            offset = len(search_session.search_results)
            rows = []
            for index, hit in enumerate(results):
                url = (hit.get("url") or hit.get("link") or "").strip()
                title = (hit.get("title") or "").strip()
                if not url or not title:
                    raise ValidationError(f"search result {index} needs a title and a url")
                rows.append(DBSearchResult(
                    search_session_id=search_session_id,
                    position=int(hit.get("position") or offset + index + 1),
                    title=title,
                    url=url,
                    display_url=hit.get("displayUrl") or hit.get("display_url"),
                    snippet=hit.get("snippet"),
                    query=hit.get("query"),
                ))
            session.add_all(rows)
            search_session.total_results = offset + len(rows)
            search_session.status = "completed"
            search_session.completed_at = datetime.utcnow()
            session.commit()
            return [row.id for row in rows]

    def load_search_results(self, search_session_id: int, pending_only: bool = False) -> list[DBSearchResult]:
        """Search results of a session in position order.

        With ``pending_only`` the results that already have a verdict from any
        processing run are left out.
        """
        with self.session_factory() as session:
            if session.get(DBSearchSession, search_session_id) is None:
                raise ValidationError(f"search session {search_session_id} does not exist")
            query = session.query(DBSearchResult).filter(
                DBSearchResult.search_session_id == search_session_id
            )
            if pending_only:
                query = query.filter(~DBSearchResult.verdicts.any())
            return query.order_by(DBSearchResult.position, DBSearchResult.id).all()

    def start_processing_session(self, search_session_id: int, job_id: Optional[str] = None) -> int:
        """Open a new processing session. Earlier sessions are left untouched."""
        with self.session_factory() as session:
            if session.get(DBSearchSession, search_session_id) is None:
                raise ValidationError(f"search session {search_session_id} does not exist")
            processing = DBLLMProcessingSession(
                search_session_id=search_session_id,
                job_id=job_id,
                status="pending",
            )
            session.add(processing)
            session.commit()
            logger.info(f"Started processing session {processing.id} for search session {search_session_id}")
            return processing.id

    def record_verdict(
        self,
        processing_session_id: int,
        search_result_id: int,
        status: str,
        *,
        confidence: Optional[float] = None,
        is_company_website: Optional[bool] = None,
        company_name: Optional[str] = None,
        website: Optional[str] = None,
        categories: Optional[list[str]] = None,
        rejection_reason: Optional[str] = None,
        error_message: Optional[str] = None,
        saved_company_id: Optional[int] = None,
    ) -> int:
        """Append the verdict for one search result within one processing session."""
        if status not in VERDICT_STATUSES:
            raise ValidationError(f"unknown verdict status {status!r}")
        if status == "rejected" and not rejection_reason:
            raise ValidationError("a rejected verdict needs a rejection reason")

        with self.session_factory() as session:
            verdict = DBLLMProcessingResult(
                llm_processing_session_id=processing_session_id,
                search_result_id=search_result_id,
                status=status,
                confidence=confidence,
                is_company_website=is_company_website,
                company_name=company_name,
                website=website,
                categories=json.dumps(categories) if categories else None,
                rejection_reason=rejection_reason,
                error_message=error_message,
                saved_company_id=saved_company_id,
            )
            session.add(verdict)
            session.commit()
            logger.debug(f"Verdict {status} for search result {search_result_id}")
            return verdict.id

    def complete_processing_session(
        self,
        processing_session_id: int,
        status: str = "completed",
    ) -> DBLLMProcessingSession:
        """Close a processing session and store its verdict statistics."""
        with self.session_factory() as session:
            processing = session.get(DBLLMProcessingSession, processing_session_id)
            if processing is None:
                raise ValidationError(f"processing session {processing_session_id} does not exist")

            counts = {name: 0 for name in VERDICT_STATUSES}
            for verdict in processing.results:
                counts[verdict.status] = counts.get(verdict.status, 0) + 1
            total = sum(counts.values())

            processing.status = status
            processing.total_results = total
            processing.accepted_count = counts["accepted"]
            processing.rejected_count = counts["rejected"]
            processing.error_count = counts["error"]
            processing.extraction_quality = counts["accepted"] / total if total else 0.0
            processing.completed_at = datetime.utcnow()
            session.commit()
            logger.info(
                f"Processing session {processing.id} {status}: "
                f"{counts['accepted']} accepted, {counts['rejected']} rejected, "
                f"{counts['error']} errors"
            )
            return processing

    def session_traceability(self, search_session_id: int) -> dict[str, Any]:
        """Every result of a search session with the verdicts of every run."""
        with self.session_factory() as session:
            search_session = session.get(DBSearchSession, search_session_id)
            if search_session is None:
                raise ValidationError(f"search session {search_session_id} does not exist")

            return {
                "search_session": {
                    "id": search_session.id,
                    "queries": search_session.get_search_queries(),
                    "industry": search_session.industry,
                    "location": search_session.location,
                    "created_at": search_session.created_at,
                },
                "processing_sessions": [
                    {
                        "id": p.id,
                        "job_id": p.job_id,
                        "status": p.status,
                        "accepted": p.accepted_count,
                        "rejected": p.rejected_count,
                        "errors": p.error_count,
                        "extraction_quality": p.extraction_quality,
                    }
                    for p in sorted(search_session.processing_sessions, key=lambda p: p.id)
                ],
                "results": [
                    {
                        "id": r.id,
                        "position": r.position,
                        "title": r.title,
                        "url": r.url,
                        "verdicts": [_verdict_dict(v) for v in sorted(r.verdicts, key=lambda v: v.id)],
                    }
                    for r in search_session.search_results
                ],
            }

    def trace_company(self, company_id: int) -> list[dict[str, Any]]:
        """Walk back from a company to the queries and verdicts that produced it."""
        with self.session_factory() as session:
            if session.get(DBCompany, company_id) is None:
                raise ValidationError(f"company {company_id} does not exist")

            verdicts = (
                session.query(DBLLMProcessingResult)
                .filter(DBLLMProcessingResult.saved_company_id == company_id)
                .order_by(DBLLMProcessingResult.id)
                .all()
            )
            chain = []
            for verdict in verdicts:
                result = verdict.search_result
                search_session = result.search_session
                chain.append({
                    "search_session_id": search_session.id,
                    "queries": search_session.get_search_queries(),
                    "query": result.query or search_session.query,
                    "search_result_id": result.id,
                    "position": result.position,
                    "url": result.url,
                    "processing_session_id": verdict.llm_processing_session_id,
                    "job_id": verdict.processing_session.job_id,
                    "verdict": _verdict_dict(verdict),
                })
            return chain


def _verdict_dict(verdict: DBLLMProcessingResult) -> dict[str, Any]:
    return {
        "id": verdict.id,
        "processing_session_id": verdict.llm_processing_session_id,
        "status": verdict.status,
        "confidence": verdict.confidence,
        "company_name": verdict.company_name,
        "website": verdict.website,
        "categories": verdict.get_categories(),
        "rejection_reason": verdict.rejection_reason,
        "error_message": verdict.error_message,
        "saved_company_id": verdict.saved_company_id,
    }
