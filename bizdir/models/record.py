"""Normalized enrichment record produced from a classification payload."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PayloadShape(str, Enum):
    """Known layouts of a classification payload, in detection order."""

    DATA_WRAPPED = "data"
    ROOT = "root"
    DOUBLE_WRAPPED = "data.data"
    LEGACY_FINAL_RESULT = "data.finalResult"


class IndustryClaim(BaseModel):
    """An industry as claimed by the source, before canonical resolution."""

    code: Optional[str] = None
    title: Optional[str] = None
    sub_industries: list[str] = Field(default_factory=list)


class CompanyInfo(BaseModel):
    """Company facts extracted from the payload."""

    name: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    industry_claims: list[IndustryClaim] = Field(default_factory=list)


class Analysis(BaseModel):
    """The source's verdict on whether the site is a business."""

    is_business: Optional[bool] = Field(
        default=None, description="True, False, or None when the source did not say"
    )
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    business_type: Optional[str] = None


class AddressInfo(BaseModel):
    """A postal location."""

    type: Optional[str] = None
    full_address: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    @property
    def is_headquarters(self) -> bool:
        return (self.type or "").strip().lower() in ("headquarters", "corporate office", "hq")


class DepartmentContact(BaseModel):
    """Emails and phones published for one department."""

    name: Optional[str] = None
    description: Optional[str] = None
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)


class ContactInfo(BaseModel):
    """Contact channels extracted from the payload."""

    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)
    contact_page: Optional[str] = None
    addresses: list[AddressInfo] = Field(default_factory=list)
    social: dict[str, str] = Field(default_factory=dict)
    departments: list[DepartmentContact] = Field(default_factory=list)


class StaffInfo(BaseModel):
    """A person listed on the site."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None


class TechnologyInfo(BaseModel):
    """A technology detected on the site."""

    name: str
    category: Optional[str] = None


class ScrapeMetadata(BaseModel):
    """Bookkeeping about how the source produced the payload."""

    mode: Optional[str] = None
    base_url: Optional[str] = None
    pages_scraped: int = 0
    total_pages_found: int = 0
    scraped_at: Optional[datetime] = None
    enhanced: bool = False


class NormalizedEnrichmentRecord(BaseModel):
    """Uniform record handed to the business resolver."""

    company: CompanyInfo = Field(default_factory=CompanyInfo)
    analysis: Analysis = Field(default_factory=Analysis)
    contact: ContactInfo = Field(default_factory=ContactInfo)
    staff: list[StaffInfo] = Field(default_factory=list)
    technologies: list[TechnologyInfo] = Field(default_factory=list)
    metadata: ScrapeMetadata = Field(default_factory=ScrapeMetadata)
    shape: Optional[PayloadShape] = None


class BatchVerdict(BaseModel):
    """The source's verdict for one search hit in a batch job."""

    is_company_website: Optional[bool] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    company_name: Optional[str] = None
    website: Optional[str] = None
    extracted_from: Optional[str] = None
    position: Optional[int] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    reasoning: Optional[str] = None

    def to_record(self) -> NormalizedEnrichmentRecord:
        """Express an accepted hit as a record the resolver understands."""
        addresses = []
        if self.city or self.state_province or self.country:
            addresses.append(AddressInfo(
                type="headquarters",
                city=self.city,
                state_province=self.state_province,
                country=self.country,
            ))
        return NormalizedEnrichmentRecord(
            company=CompanyInfo(
                name=self.company_name,
                website=self.website,
                categories=list(self.categories),
            ),
            analysis=Analysis(
                is_business=self.is_company_website,
                confidence=self.confidence,
                reasoning=self.reasoning,
            ),
            contact=ContactInfo(addresses=addresses),
        )
