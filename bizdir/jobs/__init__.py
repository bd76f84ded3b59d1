"""Job submission, polling, and the operator review queue."""

from .poller import JobPoller, ProgressCallback
from .review import ReviewQueue

__all__ = ["JobPoller", "ProgressCallback", "ReviewQueue"]
