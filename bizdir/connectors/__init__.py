"""Classification Source connectors."""

from .base import ClassificationSource
from .marketing_api import MarketingApiSource
from .mock import MockClassificationSource

__all__ = [
    "ClassificationSource",
    "MarketingApiSource",
    "MockClassificationSource",
]
