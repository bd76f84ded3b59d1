"""Normalization, taxonomy, and resolution of classification results."""

from .identity import normalize_website, same_site
from .location import normalize_country, normalize_state_province
from .normalizer import detect_shape, normalize_payload, normalize_batch_verdicts
from .taxonomy import (
    CANONICAL_INDUSTRIES,
    CanonicalIndustry,
    resolve_industry,
    resolve_label,
    is_allowed_sub_industry,
)
from .resolver import BusinessResolver, IdentityLocks, ResolveOutcome
from .traceability import TraceabilityRecorder

__all__ = [
    "normalize_website",
    "same_site",
    "normalize_country",
    "normalize_state_province",
    "detect_shape",
    "normalize_payload",
    "normalize_batch_verdicts",
    "CANONICAL_INDUSTRIES",
    "CanonicalIndustry",
    "resolve_industry",
    "resolve_label",
    "is_allowed_sub_industry",
    "BusinessResolver",
    "IdentityLocks",
    "ResolveOutcome",
    "TraceabilityRecorder",
]
