"""Enrichment job lifecycle model."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from bizdir.errors import IllegalTransition


class JobState(str, Enum):
    """Lifecycle states of an enrichment job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT, JobState.CANCELLED}
)

# Allowed moves. Terminal states have no exits.
TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset(
        {JobState.PROCESSING, JobState.COMPLETED, JobState.FAILED,
         JobState.TIMED_OUT, JobState.CANCELLED}
    ),
    JobState.PROCESSING: frozenset(
        {JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT, JobState.CANCELLED}
    ),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
    JobState.CANCELLED: frozenset(),
}

# Status strings reported by the Classification Source
REMOTE_STATUS_MAP: dict[str, JobState] = {
    "queued": JobState.QUEUED,
    "waiting": JobState.QUEUED,
    "delayed": JobState.QUEUED,
    "pending": JobState.QUEUED,
    "processing": JobState.PROCESSING,
    "active": JobState.PROCESSING,
    "completed": JobState.COMPLETED,
    "failed": JobState.FAILED,
}


def can_transition(current: JobState, target: JobState) -> bool:
    """Staying in a non-terminal state is allowed; everything else uses the table."""
    if current == target:
        return not current.is_terminal
    return target in TRANSITIONS[current]


def next_state(current: JobState, target: JobState) -> JobState:
    """Return ``target`` if the move is legal, raise ``IllegalTransition`` otherwise."""
    if not can_transition(current, target):
        raise IllegalTransition(current, target)
    return target


class JobTarget(BaseModel):
    """What a job classifies: one website or a batch of search results."""

    website_url: Optional[str] = None
    search_session_id: Optional[str] = None
    search_results: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def is_batch(self) -> bool:
        return self.website_url is None

    def describe(self) -> str:
        if self.website_url:
            return self.website_url
        return f"search session {self.search_session_id} ({len(self.search_results)} results)"


class JobHandle(BaseModel):
    """What the Classification Source returns when a job is accepted."""

    job_id: str
    poll_url: Optional[str] = None
    position: Optional[int] = None
    estimated_wait_time: Optional[float] = None


class RemoteJobStatus(BaseModel):
    """One status report from the Classification Source poll endpoint."""

    status: str = "unknown"
    progress: float = 0.0
    result: Optional[Any] = None
    error: Optional[str] = None
    position: Optional[int] = None
    estimated_wait_time: Optional[float] = None

    @property
    def state(self) -> Optional[JobState]:
        return REMOTE_STATUS_MAP.get(self.status.strip().lower())


class EnrichmentJob(BaseModel):
    """A submitted classification job, advanced only by the poller."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    remote_id: Optional[str] = None
    target: JobTarget
    state: JobState = JobState.QUEUED
    progress: float = 0.0
    position: Optional[int] = None
    estimated_wait_time: Optional[float] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    needs_review: bool = False
    submitted_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def advance(self, target: JobState) -> bool:
        """Move to ``target``. Returns True when the state actually changed."""
        new_state = next_state(self.state, target)
        changed = new_state != self.state
        self.state = new_state
        self.updated_at = datetime.utcnow()
        if new_state.is_terminal:
            self.completed_at = self.updated_at
        return changed

    def apply_hints(self, status: RemoteJobStatus):
        """Copy progress hints from a poll. Hints never change the state."""
        if self.state.is_terminal:
            return
        self.progress = max(0.0, min(float(status.progress or 0.0), 100.0))
        self.position = status.position
        self.estimated_wait_time = status.estimated_wait_time

    def flag_for_review(self, reason: str):
        """Mark a completed job whose payload could not be used."""
        self.needs_review = True
        self.error = reason
