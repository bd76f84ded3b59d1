"""Tests for the search-to-company traceability chain."""

import pytest
from sqlalchemy.exc import IntegrityError

from bizdir.enrich.traceability import TraceabilityRecorder
from bizdir.errors import ValidationError
from bizdir.models.database import DBCompany, DBLLMProcessingResult

HITS = [
    {"title": "Acme Roofing - Austin", "url": "https://acmeroofing.com", "snippet": "Roof repair", "query": "roofers austin"},
    {"title": "Best Roofers in Austin", "url": "https://yelp.com/roofers", "query": "roofers austin"},
    {"title": "Bolt Electric", "url": "https://boltelectric.com", "query": "electricians austin"},
]


@pytest.fixture
def recorder(session_factory):
    return TraceabilityRecorder(session_factory)


@pytest.fixture
def search_session(recorder):
    session_id = recorder.create_search_session(
        ["roofers austin", "electricians austin"], industry="Construction", location="Austin, TX"
    )
    result_ids = recorder.add_search_results(session_id, HITS)
    return session_id, result_ids


def make_company(session_factory, name="Acme Roofing", identity="acmeroofing.com"):
    with session_factory() as session:
        company = DBCompany(name=name, normalized_website=identity)
        session.add(company)
        session.commit()
        return company.id


class TestSearchSessions:
    """Tests for search session creation."""

    def test_identical_session_is_reused(self, recorder):
        first = recorder.create_search_session(["plumbers"], location="Denver")
        second = recorder.create_search_session([" plumbers ", ""], location="Denver")
        assert first == second

    def test_different_context_is_new(self, recorder):
        first = recorder.create_search_session(["plumbers"], location="Denver")
        second = recorder.create_search_session(["plumbers"], location="Boulder")
        assert first != second

    def test_different_queries_is_new(self, recorder):
        first = recorder.create_search_session(["plumbers"])
        second = recorder.create_search_session(["plumbers", "pipe repair"])
        assert first != second

    def test_needs_a_query(self, recorder):
        with pytest.raises(ValidationError):
            recorder.create_search_session(["", "  "])


class TestSearchResults:
    """Tests for storing search hits."""

    def test_positions_follow_order(self, recorder, search_session):
        session_id, result_ids = search_session
        results = recorder.load_search_results(session_id)
        assert [r.id for r in results] == result_ids
        assert [r.position for r in results] == [1, 2, 3]
        assert results[0].query == "roofers austin"

    def test_hit_needs_url_and_title(self, recorder, search_session):
        session_id, _ = search_session
        with pytest.raises(ValidationError):
            recorder.add_search_results(session_id, [{"title": "No link"}])

    def test_unknown_session(self, recorder):
        with pytest.raises(ValidationError):
            recorder.add_search_results(999, HITS)
        with pytest.raises(ValidationError):
            recorder.load_search_results(999)


class TestVerdicts:
    """Tests for processing sessions and verdicts."""

    def test_statistics(self, recorder, search_session, session_factory):
        session_id, (acme, yelp, bolt) = search_session
        company_id = make_company(session_factory)
        run = recorder.start_processing_session(session_id, job_id="job-1")
        recorder.record_verdict(run, acme, "accepted", confidence=0.95, saved_company_id=company_id)
        recorder.record_verdict(run, yelp, "rejected", confidence=0.9, rejection_reason="Directory site")
        recorder.record_verdict(run, bolt, "error", error_message="No verdict returned")

        processing = recorder.complete_processing_session(run)

        assert processing.status == "completed"
        assert processing.total_results == 3
        assert (processing.accepted_count, processing.rejected_count, processing.error_count) == (1, 1, 1)
        assert processing.extraction_quality == pytest.approx(1 / 3)

    def test_empty_session_quality(self, recorder, search_session):
        session_id, _ = search_session
        run = recorder.start_processing_session(session_id)
        assert recorder.complete_processing_session(run, status="failed").extraction_quality == 0.0

    def test_rejection_needs_reason(self, recorder, search_session):
        session_id, result_ids = search_session
        run = recorder.start_processing_session(session_id)
        with pytest.raises(ValidationError):
            recorder.record_verdict(run, result_ids[0], "rejected")

    def test_unknown_status(self, recorder, search_session):
        session_id, result_ids = search_session
        run = recorder.start_processing_session(session_id)
        with pytest.raises(ValidationError):
            recorder.record_verdict(run, result_ids[0], "maybe")

    def test_one_verdict_per_result_per_run(self, recorder, search_session):
        session_id, result_ids = search_session
        run = recorder.start_processing_session(session_id)
        recorder.record_verdict(run, result_ids[0], "error", error_message="timeout")
        with pytest.raises(IntegrityError):
            recorder.record_verdict(run, result_ids[0], "accepted")

    def test_reprocessing_keeps_history(self, recorder, search_session, session_factory):
        session_id, result_ids = search_session
        first = recorder.start_processing_session(session_id)
        recorder.record_verdict(first, result_ids[0], "error", error_message="timeout")
        second = recorder.start_processing_session(session_id)
        recorder.record_verdict(second, result_ids[0], "rejected", rejection_reason="Not a business")

        assert first != second
        with session_factory() as session:
            statuses = [
                v.status for v in session.query(DBLLMProcessingResult).order_by(DBLLMProcessingResult.id)
            ]
        assert statuses == ["error", "rejected"]

    def test_pending_only(self, recorder, search_session):
        session_id, (acme, yelp, bolt) = search_session
        run = recorder.start_processing_session(session_id)
        recorder.record_verdict(run, acme, "error", error_message="timeout")

        pending = recorder.load_search_results(session_id, pending_only=True)
        assert [r.id for r in pending] == [yelp, bolt]


class TestReadSide:
    """Tests for walking the chain."""

    def test_trace_company(self, recorder, search_session, session_factory):
        session_id, (acme, _, _) = search_session
        company_id = make_company(session_factory)
        run = recorder.start_processing_session(session_id, job_id="job-7")
        recorder.record_verdict(
            run, acme, "accepted", confidence=0.95, company_name="Acme Roofing",
            categories=["Construction & Building"], saved_company_id=company_id,
        )

        chain = recorder.trace_company(company_id)

        assert len(chain) == 1
        link = chain[0]
        assert link["search_session_id"] == session_id
        assert link["query"] == "roofers austin"
        assert link["queries"] == ["roofers austin", "electricians austin"]
        assert link["url"] == "https://acmeroofing.com"
        assert link["job_id"] == "job-7"
        assert link["verdict"]["status"] == "accepted"
        assert link["verdict"]["categories"] == ["Construction & Building"]

    def test_trace_unknown_company(self, recorder):
        with pytest.raises(ValidationError):
            recorder.trace_company(12345)

    def test_session_traceability(self, recorder, search_session):
        session_id, (acme, yelp, _) = search_session
        run = recorder.start_processing_session(session_id)
        recorder.record_verdict(run, yelp, "rejected", rejection_reason="Directory site")
        recorder.complete_processing_session(run)

        report = recorder.session_traceability(session_id)

        assert report["search_session"]["industry"] == "Construction"
        assert [p["id"] for p in report["processing_sessions"]] == [run]
        assert report["processing_sessions"][0]["rejected"] == 1
        by_id = {r["id"]: r for r in report["results"]}
        assert by_id[acme]["verdicts"] == []
        assert by_id[yelp]["verdicts"][0]["rejection_reason"] == "Directory site"
