"""Operator review queue for completed jobs with unusable results."""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from bizdir.models import EnrichmentJob
from bizdir.models.database import DBReviewItem

logger = logging.getLogger(__name__)


class ReviewQueue:
    """Persisted list of jobs an operator should look at."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def add(self, job: EnrichmentJob, reason: str, payload: Optional[Any] = None) -> int:
        """Flag ``job`` for review and store the payload that could not be used."""
        job.flag_for_review(reason)
        item = DBReviewItem(
            job_id=job.id,
            remote_job_id=job.remote_id,
            target=job.target.describe(),
            reason=reason,
            payload=json.dumps(payload, default=str) if payload is not None else None,
        )
        with self.session_factory() as session:
            session.add(item)
            session.commit()
            logger.error(f"[{job.id}] Queued for review: {reason}")
            return item.id

    def list_open(self) -> list[DBReviewItem]:
        with self.session_factory() as session:
            return (
                session.query(DBReviewItem)
                .filter(DBReviewItem.resolved.is_(False))
                .order_by(DBReviewItem.created_at, DBReviewItem.id)
                .all()
            )

    def resolve(self, item_id: int) -> bool:
        """Close a review item. Returns False if it does not exist or is already closed."""
        with self.session_factory() as session:
            item = session.get(DBReviewItem, item_id)
            if item is None or item.resolved:
                return False
            item.resolved = True
            item.resolved_at = datetime.utcnow()
            session.commit()
            logger.info(f"Review item {item_id} resolved")
            return True
