"""SQLAlchemy database models and setup."""

import json
import sqlite3
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from bizdir.config import settings

Base = declarative_base()

# Children are owned exclusively by their company
OWNED = "all, delete-orphan"


class DBCompany(Base):
    """Business directory entry. One row per normalized website identity."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    normalized_website = Column(String(1000), unique=True, nullable=False, index=True)
    name = Column(String(500), nullable=False)
    website = Column(String(1000))
    base_url = Column(String(1000))
    description = Column(Text)

    # Primary contact and location
    primary_email = Column(String(320))
    primary_phone = Column(String(100))
    city = Column(String(200))
    state_province = Column(String(200))
    country = Column(String(200))

    business_type = Column(String(100))
    classification_confidence = Column(Float)

    # Refreshed on every accepted run
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    last_enriched_at = Column(DateTime)

    addresses = relationship("DBAddress", back_populates="company", cascade=OWNED)
    contacts = relationship("DBContact", back_populates="company", cascade=OWNED)
    socials = relationship("DBSocialProfile", back_populates="company", cascade=OWNED)
    services = relationship("DBService", back_populates="company", cascade=OWNED)
    staff = relationship("DBStaffMember", back_populates="company", cascade=OWNED)
    technologies = relationship("DBTechnology", back_populates="company", cascade=OWNED)
    industries = relationship("DBIndustryAssociation", back_populates="company", cascade=OWNED)
    enrichments = relationship("DBEnrichment", back_populates="company", cascade=OWNED)

    __table_args__ = (Index("idx_company_name", "name"),)


class DBAddress(Base):
    """Postal address of a company."""

    __tablename__ = "company_addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(100))
    full_address = Column(Text)
    street_address = Column(String(500))
    city = Column(String(200))
    state_province = Column(String(200))
    country = Column(String(200))
    postal_code = Column(String(50))
    is_primary = Column(Boolean, default=False)

    company = relationship("DBCompany", back_populates="addresses")

    __table_args__ = (Index("idx_address_company", "company_id"),)


class DBContact(Base):
    """Email, phone, or contact-page URL of a company."""

    __tablename__ = "company_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)  # email, phone, url
    value = Column(String(1000), nullable=False)
    label = Column(String(200))
    description = Column(Text)
    is_primary = Column(Boolean, default=False)

    company = relationship("DBCompany", back_populates="contacts")

    __table_args__ = (
        UniqueConstraint("company_id", "type", "value", name="uq_contact_company_type_value"),
    )


class DBSocialProfile(Base):
    """Social media profile. One per platform."""

    __tablename__ = "company_socials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    url = Column(String(1000), nullable=False)
    is_verified = Column(Boolean, default=False)

    company = relationship("DBCompany", back_populates="socials")

    __table_args__ = (
        UniqueConstraint("company_id", "platform", name="uq_social_company_platform"),
    )


class DBService(Base):
    __tablename__ = "company_services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(500), nullable=False)
    is_primary = Column(Boolean, default=False)

    company = relationship("DBCompany", back_populates="services")


class DBStaffMember(Base):
    __tablename__ = "company_staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String(200))
    last_name = Column(String(200))
    title = Column(String(300))
    department = Column(String(200))
    email = Column(String(320))
    phone = Column(String(100))
    linkedin_url = Column(String(1000))

    company = relationship("DBCompany", back_populates="staff")


class DBTechnology(Base):
    __tablename__ = "company_technologies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(String(100))
    is_active = Column(Boolean, default=True)

    company = relationship("DBCompany", back_populates="technologies")


class DBIndustryAssociation(Base):
    """Link to a canonical industry. ``sub_industry`` is "" for the industry itself."""

    __tablename__ = "company_industries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    industry_code = Column(String(20), nullable=False)
    industry_title = Column(String(200), nullable=False)
    sub_industry = Column(String(200), nullable=False, default="")
    taxonomy_version = Column(String(20))
    is_primary = Column(Boolean, default=False)

    company = relationship("DBCompany", back_populates="industries")

    __table_args__ = (
        UniqueConstraint(
            "company_id", "industry_code", "sub_industry", name="uq_company_industry"
        ),
    )


class DBEnrichment(Base):
    """Enrichment history for a company."""

    __tablename__ = "enrichments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(100), nullable=False)
    mode = Column(String(50))
    payload_shape = Column(String(50))
    pages_scraped = Column(Integer, default=0)
    total_pages_found = Column(Integer, default=0)
    scraped_at = Column(DateTime)
    enriched_at = Column(DateTime, default=datetime.utcnow)
    data = Column(Text)  # JSON blob of the raw payload

    company = relationship("DBCompany", back_populates="enrichments")

    __table_args__ = (Index("idx_enrichment_company", "company_id"),)


class DBReviewItem(Base):
    """Operator queue entry for a job whose result could not be used."""

    __tablename__ = "review_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), nullable=False, index=True)
    remote_job_id = Column(String(100))
    target = Column(String(1000))
    reason = Column(Text, nullable=False)
    payload = Column(Text)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow)
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime)


class DBSearchSession(Base):
    """A batch of search queries."""

    __tablename__ = "search_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query = Column(String(1000))  # first non-empty query
    search_queries = Column(Text, nullable=False)  # JSON array
    industry = Column(String(200))
    location = Column(String(200))
    city = Column(String(200))
    state_province = Column(String(200))
    country = Column(String(200))
    results_limit = Column(Integer, default=10)
    status = Column(String(50), default="pending")  # pending, completed
    total_results = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)

    search_results = relationship(
        "DBSearchResult", back_populates="search_session", order_by="DBSearchResult.position"
    )
    processing_sessions = relationship("DBLLMProcessingSession", back_populates="search_session")

    def get_search_queries(self) -> list[str]:
        return json.loads(self.search_queries) if self.search_queries else []

    def set_search_queries(self, queries: list[str]):
        self.search_queries = json.dumps(queries)


class DBSearchResult(Base):
    """One hit returned for a search session."""

    __tablename__ = "search_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    search_session_id = Column(Integer, ForeignKey("search_sessions.id"), nullable=False)
    position = Column(Integer, nullable=False)
    title = Column(String(1000), nullable=False)
    url = Column(String(2000), nullable=False)
    display_url = Column(String(2000))
    snippet = Column(Text)
    query = Column(String(1000))
    created_at = Column(DateTime, default=datetime.utcnow)

    search_session = relationship("DBSearchSession", back_populates="search_results")
    verdicts = relationship("DBLLMProcessingResult", back_populates="search_result")

    __table_args__ = (Index("idx_search_result_session", "search_session_id"),)


class DBLLMProcessingSession(Base):
    """One classification run over a search session's results."""

    __tablename__ = "llm_processing_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    search_session_id = Column(Integer, ForeignKey("search_sessions.id"), nullable=False)
    job_id = Column(String(36))
    status = Column(String(50), default="pending")  # pending, completed, failed
    total_results = Column(Integer, default=0)
    accepted_count = Column(Integer, default=0)
    rejected_count = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    extraction_quality = Column(Float)
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)

    search_session = relationship("DBSearchSession", back_populates="processing_sessions")
    results = relationship("DBLLMProcessingResult", back_populates="processing_session")

    __table_args__ = (Index("idx_llm_session_search", "search_session_id"),)


class DBLLMProcessingResult(Base):
    """Verdict for exactly one search result within one processing session."""

    __tablename__ = "llm_processing_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    llm_processing_session_id = Column(
        Integer, ForeignKey("llm_processing_sessions.id"), nullable=False
    )
    search_result_id = Column(Integer, ForeignKey("search_results.id"), nullable=False)
    status = Column(String(20), nullable=False)  # accepted, rejected, error
    confidence = Column(Float)
    is_company_website = Column(Boolean)
    company_name = Column(String(500))
    website = Column(String(1000))
    categories = Column(Text)  # JSON array
    rejection_reason = Column(Text)
    error_message = Column(Text)
    saved_company_id = Column(Integer, ForeignKey("companies.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow)

    processing_session = relationship("DBLLMProcessingSession", back_populates="results")
    search_result = relationship("DBSearchResult", back_populates="verdicts")
    saved_company = relationship("DBCompany")

    __table_args__ = (
        UniqueConstraint(
            "llm_processing_session_id", "search_result_id", name="uq_verdict_per_session"
        ),
        Index("idx_verdict_company", "saved_company_id"),
    )

    def get_categories(self) -> list[str]:
        return json.loads(self.categories) if self.categories else []


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Database initialization
def init_db(db_url: Optional[str] = None) -> sessionmaker:
    """Initialize database and return session maker."""
    url = db_url or settings.database_url
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
