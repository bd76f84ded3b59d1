"""CLI entry point for business directory enrichment."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from bizdir.config import settings
from bizdir.connectors import MarketingApiSource
from bizdir.enrich import TraceabilityRecorder
from bizdir.errors import BizdirError, ConfigurationError
from bizdir.jobs import ReviewQueue
from bizdir.models import EnrichmentJob
from bizdir.models.database import init_db
from bizdir.pipeline import BatchOutcome, EnrichmentPipeline, PipelineOutcome

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def report_progress(job: EnrichmentJob):
    position = f" (queue position {job.position})" if job.position is not None else ""
    logger.info(f"  {job.state.value} {job.progress:.0f}%{position}")


async def run_enrich(url: str, min_confidence, dry_run: bool) -> PipelineOutcome:
    """Enrich a single website."""
    source = MarketingApiSource()
    try:
        pipeline = EnrichmentPipeline(source, init_db())
        return await pipeline.enrich_website(
            url,
            min_confidence=min_confidence,
            dry_run=dry_run,
            on_progress=report_progress,
        )
    finally:
        await source.aclose()


async def run_process(session_id: int, min_confidence, dry_run: bool, pending_only: bool) -> BatchOutcome:
    """Classify the stored results of a search session."""
    source = MarketingApiSource()
    try:
        pipeline = EnrichmentPipeline(source, init_db())
        return await pipeline.process_search_session(
            session_id,
            min_confidence=min_confidence,
            dry_run=dry_run,
            pending_only=pending_only,
            on_progress=report_progress,
        )
    finally:
        await source.aclose()


def import_results(path: Path) -> int:
    """Create a search session from a JSON file of search hits.

    The file holds either a list of hits or an object with ``queries``,
    optional search context, and ``results``.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        data = {"results": data}
    hits = data.get("results") or []
    queries = data.get("queries") or sorted({h["query"] for h in hits if h.get("query")})
    if not queries:
        queries = [path.stem]

    recorder = TraceabilityRecorder(init_db())
    session_id = recorder.create_search_session(
        queries,
        industry=data.get("industry"),
        location=data.get("location"),
        city=data.get("city"),
        state_province=data.get("stateProvince"),
        country=data.get("country"),
        results_limit=data.get("resultsLimit") or max(len(hits), 10),
    )
    ids = recorder.add_search_results(session_id, hits)
    logger.info(f"Imported {len(ids)} results into search session {session_id}")
    return session_id


def print_enrichment(outcome: PipelineOutcome):
    job = outcome.job
    print(f"\nJob {job.id}: {job.state.value}")
    if job.error:
        print(f"   Error: {job.error}")
    if outcome.review_item_id is not None:
        print(f"   Queued for review as item {outcome.review_item_id}")
    resolution = outcome.resolution
    if resolution is None:
        return
    if resolution.skipped:
        print(f"   Skipped: {resolution.skip_reason}")
    elif not resolution.success:
        print(f"   Failed: {resolution.error}")
    else:
        action = "created" if resolution.created else "updated"
        suffix = " (dry run)" if resolution.dry_run else ""
        print(f"   Company {resolution.company_id} {action}{suffix}")
    for warning in resolution.warnings:
        print(f"   Warning: {warning}")


def print_batch(outcome: BatchOutcome):
    print("\n" + "=" * 60)
    print(f"SEARCH SESSION {outcome.search_session_id}")
    print("=" * 60)
    if outcome.processing_session_id is not None:
        print(f"Processing session: {outcome.processing_session_id}")
    print(f"Accepted: {outcome.count('accepted')}")
    print(f"Rejected: {outcome.count('rejected')}")
    print(f"Errors: {outcome.count('error')}")
    for verdict in outcome.verdicts:
        detail = verdict.rejection_reason or verdict.error_message or f"company {verdict.company_id}"
        print(f"   #{verdict.search_result_id} {verdict.status}: {detail}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Business directory enrichment - classify websites and save businesses"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run resolution fully but commit nothing",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help=f"Minimum classification confidence (default: {settings.min_confidence})",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    enrich = commands.add_parser("enrich", help="Enrich a single website")
    enrich.add_argument("url")

    importer = commands.add_parser("import-results", help="Import search results from JSON")
    importer.add_argument("file", type=Path)

    process = commands.add_parser("process", help="Classify a search session's results")
    process.add_argument("session_id", type=int)
    process.add_argument(
        "--pending-only",
        action="store_true",
        help="Only results without a verdict yet",
    )

    trace = commands.add_parser("trace", help="Show how a company entered the directory")
    trace.add_argument("company_id", type=int)

    review = commands.add_parser("review", help="List open review items")
    review.add_argument("--resolve", type=int, metavar="ITEM_ID", help="Mark an item resolved")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings.require_classification_source()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(2)

    try:
        if args.command == "enrich":
            outcome = asyncio.run(run_enrich(args.url, args.min_confidence, args.dry_run))
            print_enrichment(outcome)
        elif args.command == "import-results":
            if not args.file.exists():
                logger.error(f"Results file not found: {args.file}")
                sys.exit(1)
            session_id = import_results(args.file)
            print(f"Search session {session_id}")
        elif args.command == "process":
            outcome = asyncio.run(
                run_process(args.session_id, args.min_confidence, args.dry_run, args.pending_only)
            )
            print_batch(outcome)
        elif args.command == "trace":
            chain = TraceabilityRecorder(init_db()).trace_company(args.company_id)
            print(json.dumps(chain, indent=2, default=str))
        elif args.command == "review":
            queue = ReviewQueue(init_db())
            if args.resolve is not None:
                if not queue.resolve(args.resolve):
                    logger.error(f"No open review item {args.resolve}")
                    sys.exit(1)
            for item in queue.list_open():
                print(f"#{item.id} [{item.created_at:%Y-%m-%d %H:%M}] {item.target}: {item.reason}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except (BizdirError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
