"""Data models for business directory enrichment."""

from .job import (
    EnrichmentJob,
    JobHandle,
    JobState,
    JobTarget,
    RemoteJobStatus,
)
from .record import (
    AddressInfo,
    Analysis,
    BatchVerdict,
    CompanyInfo,
    ContactInfo,
    DepartmentContact,
    IndustryClaim,
    NormalizedEnrichmentRecord,
    PayloadShape,
    ScrapeMetadata,
    StaffInfo,
    TechnologyInfo,
)

__all__ = [
    "EnrichmentJob",
    "JobHandle",
    "JobState",
    "JobTarget",
    "RemoteJobStatus",
    "AddressInfo",
    "Analysis",
    "BatchVerdict",
    "CompanyInfo",
    "ContactInfo",
    "DepartmentContact",
    "IndustryClaim",
    "NormalizedEnrichmentRecord",
    "PayloadShape",
    "ScrapeMetadata",
    "StaffInfo",
    "TechnologyInfo",
]
