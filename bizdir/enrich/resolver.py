"""Business resolution: deduplicate by website identity and merge into the directory."""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bizdir.config import settings
from bizdir.enrich.identity import normalize_website
from bizdir.enrich.location import normalize_country, normalize_state_province
from bizdir.enrich.taxonomy import TAXONOMY_VERSION, resolve_industry, resolve_label
from bizdir.errors import DuplicateConstraintViolation, ValidationError
from bizdir.models import AddressInfo, NormalizedEnrichmentRecord
from bizdir.models.database import (
    DBAddress,
    DBCompany,
    DBContact,
    DBEnrichment,
    DBIndustryAssociation,
    DBService,
    DBSocialProfile,
    DBStaffMember,
    DBTechnology,
)

logger = logging.getLogger(__name__)

DIRECTORY_BUSINESS_TYPES = frozenset({"directory"})


class IdentityLocks:
    """In-process lock per normalized identity.

    Only serializes threads of this process. Cross-process safety comes from
    the unique constraint on ``companies.normalized_website``.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, identity: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(identity, threading.Lock())


@dataclass
class ResolveOutcome:
    """Result of resolving one record against the directory."""

    company_id: Optional[int] = None
    created: bool = False
    updated: bool = False
    skipped: bool = False
    skip_reason: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class BusinessResolver:
    """Create or merge a company aggregate from a normalized record.

    All writes for one company happen in one session and commit together.
    Attempts for the same identity are serialized; a unique-constraint
    conflict (another writer created the company first) is retried as a merge.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        min_confidence: Optional[float] = None,
        max_conflict_retries: Optional[int] = None,
        locks: Optional[IdentityLocks] = None,
    ):
        self.session_factory = session_factory
        self.min_confidence = settings.min_confidence if min_confidence is None else min_confidence
        self.max_conflict_retries = (
            settings.conflict_retries if max_conflict_retries is None else max_conflict_retries
        )
        self.locks = locks or IdentityLocks()

    def resolve(
        self,
        record: NormalizedEnrichmentRecord,
        *,
        min_confidence: Optional[float] = None,
        dry_run: bool = False,
        raw_payload: Optional[Any] = None,
        source: Optional[str] = None,
    ) -> ResolveOutcome:
        """Persist ``record`` if it passes the classification gate."""
        threshold = self.min_confidence if min_confidence is None else min_confidence
        website = record.company.website

        reason = self.gate(record, threshold)
        if reason:
            logger.info(f"Skipping {website or record.company.name or 'record'}: {reason}")
            return ResolveOutcome(skipped=True, skip_reason=reason, dry_run=dry_run)

        identity = normalize_website(website)
        if not identity:
            return self._failure("Record has no usable website", dry_run)

        warnings: list[str] = []
        try:
            with self.locks.get(identity):
                return self._resolve_locked(record, identity, dry_run, raw_payload, source, warnings)
        except ValidationError as e:
            return self._failure(str(e), dry_run, warnings)
        except DuplicateConstraintViolation as e:
            return self._failure(str(e), dry_run, warnings)

    @staticmethod
    def gate(record: NormalizedEnrichmentRecord, threshold: float) -> Optional[str]:
        """Return a skip reason, or None when the record may be persisted."""
        analysis = record.analysis
        if analysis.is_business is None:
            return "Classification did not say whether this is a business"
        if analysis.is_business is False:
            return f"Not a business: {analysis.reasoning or 'no reasoning given'}"
        if (analysis.business_type or "").strip().lower() in DIRECTORY_BUSINESS_TYPES:
            return "Directory or listing platform, not a business"
        if analysis.confidence is not None and analysis.confidence < threshold:
            return f"Confidence {analysis.confidence:.2f} below threshold {threshold:.2f}"
        return None

    def _resolve_locked(
        self,
        record: NormalizedEnrichmentRecord,
        identity: str,
        dry_run: bool,
        raw_payload: Optional[Any],
        source: Optional[str],
        warnings: list[str],
    ) -> ResolveOutcome:
        for attempt in range(1, self.max_conflict_retries + 1):
            del warnings[:]
            session = self.session_factory()
            try:
                return self._write(session, record, identity, dry_run, raw_payload, source, warnings)
            except IntegrityError as e:
                session.rollback()
                if not _is_identity_conflict(e):
                    logger.error(f"Constraint violation persisting {identity}: {e.orig}")
                    return self._failure(f"Database error: {e.orig}", dry_run, warnings)
                logger.info(
                    f"Identity conflict on {identity} (attempt {attempt}/"
                    f"{self.max_conflict_retries}), retrying as merge: {e.orig}"
                )
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to persist {identity}: {e}")
                return self._failure(f"Database error: {e}", dry_run, warnings)
            finally:
                session.close()
        raise DuplicateConstraintViolation(identity, self.max_conflict_retries)

    def _write(
        self,
        session: Session,
        record: NormalizedEnrichmentRecord,
        identity: str,
        dry_run: bool,
        raw_payload: Optional[Any],
        source: Optional[str],
        warnings: list[str],
    ) -> ResolveOutcome:
        now = datetime.utcnow()
        company = self._find_existing(session, identity, record.company.name)
        created = company is None

        if created:
            if not record.company.name:
                raise ValidationError(f"Cannot create company for {identity} without a name")
            company = DBCompany(
                normalized_website=identity,
                name=record.company.name,
                website=record.company.website,
                created_at=now,
            )
            session.add(company)
        else:
            logger.debug(f"Merging into company {company.id} ({company.name}) for {identity}")

        self._merge_scalars(company, record)
        company.updated_at = now
        company.last_enriched_at = now
        company.is_active = True

        self._merge_addresses(company, record.contact.addresses)
        self._merge_contacts(company, record)
        self._merge_socials(company, record.contact.social)
        self._merge_named(company.services, DBService, record.company.services)
        self._merge_technologies(company, record)
        self._merge_staff(company, record)
        warnings.extend(self._merge_industries(company, record))
        company.enrichments.append(self._enrichment(record, raw_payload, source, now))

        session.flush()
        company_id = company.id

        if dry_run:
            session.rollback()
            if created:
                company_id = None
            logger.info(f"Dry run: would {'create' if created else 'update'} company for {identity}")
        else:
            session.commit()
            logger.info(f"{'Created' if created else 'Updated'} company {company_id} for {identity}")

        return ResolveOutcome(
            company_id=company_id,
            created=created,
            updated=not created,
            warnings=list(warnings),
            dry_run=dry_run,
        )

    def _find_existing(
        self,
        session: Session,
        identity: str,
        name: Optional[str],
    ) -> Optional[DBCompany]:
        """Look up by identity, then by exact case-insensitive name."""
        company = (
            session.query(DBCompany)
            .filter(DBCompany.normalized_website == identity)
            .one_or_none()
        )
        if company is None and name and name.strip():
            company = (
                session.query(DBCompany)
                .filter(func.lower(DBCompany.name) == name.strip().lower())
                .order_by(DBCompany.id)
                .first()
            )
            if company is not None:
                logger.info(
                    f"Matched {identity} to company {company.id} by name under "
                    f"{company.normalized_website}"
                )
        return company

    def _merge_scalars(self, company: DBCompany, record: NormalizedEnrichmentRecord):
        """Fill empty fields. Populated fields are never replaced or blanked."""
        info = record.company
        contact = record.contact
        _fill(company, "name", info.name)
        _fill(company, "website", info.website)
        _fill(company, "base_url", record.metadata.base_url)
        _fill(company, "description", info.description)
        _fill(company, "primary_email", contact.emails[0] if contact.emails else None)
        _fill(company, "primary_phone", contact.phones[0] if contact.phones else None)
        _fill(company, "business_type", record.analysis.business_type)
        _fill(company, "classification_confidence", record.analysis.confidence)

        location = _primary_location(contact.addresses)
        if location is not None:
            city, state, country = _location_key_parts(location)
            _fill(company, "city", city)
            _fill(company, "state_province", state)
            _fill(company, "country", country)

    def _merge_addresses(self, company: DBCompany, addresses: list[AddressInfo]):
        existing = {_address_key(a.city, a.state_province, a.country, a.full_address) for a in company.addresses}
        primary = _primary_location(addresses)
        for address in addresses:
            city, state, country = _location_key_parts(address)
            key = _address_key(city, state, country, address.full_address)
            if key in existing:
                continue
            existing.add(key)
            company.addresses.append(DBAddress(
                type=address.type,
                full_address=address.full_address,
                street_address=address.street_address,
                city=city,
                state_province=state,
                country=country,
                postal_code=address.postal_code,
                is_primary=address is primary and not any(a.is_primary for a in company.addresses),
            ))

    def _merge_contacts(self, company: DBCompany, record: NormalizedEnrichmentRecord):
        contact = record.contact
        entries: list[tuple[str, str, Optional[str], Optional[str]]] = []
        entries += [("email", email, None, None) for email in contact.emails]
        entries += [("phone", phone, None, None) for phone in contact.phones]
        if contact.contact_page:
            entries.append(("url", contact.contact_page, "Contact page", None))
        for department in contact.departments:
            entries += [("email", e, department.name, department.description) for e in department.emails]
            entries += [("phone", p, department.name, department.description) for p in department.phones]

        existing = {(c.type, c.value.strip().lower()) for c in company.contacts}
        for kind, value, label, description in entries:
            key = (kind, value.strip().lower())
            if key in existing:
                continue
            existing.add(key)
            company.contacts.append(DBContact(
                type=kind,
                value=value.strip(),
                label=label,
                description=description,
                is_primary=value in (company.primary_email, company.primary_phone),
            ))

    def _merge_socials(self, company: DBCompany, social: dict[str, str]):
        existing = {s.platform.lower() for s in company.socials}
        for platform, url in social.items():
            if platform.lower() in existing:
                continue
            existing.add(platform.lower())
            company.socials.append(DBSocialProfile(platform=platform.lower(), url=url))

    @staticmethod
    def _merge_named(collection: list, model, names: list[str]):
        existing = {item.name.strip().lower() for item in collection}
        for name in names:
            if name.strip().lower() in existing:
                continue
            existing.add(name.strip().lower())
            collection.append(model(name=name.strip(), is_primary=not collection))

    def _merge_technologies(self, company: DBCompany, record: NormalizedEnrichmentRecord):
        existing = {t.name.strip().lower(): t for t in company.technologies}
        for tech in record.technologies:
            key = tech.name.strip().lower()
            if key in existing:
                _fill(existing[key], "category", tech.category)
                continue
            row = DBTechnology(name=tech.name.strip(), category=tech.category)
            existing[key] = row
            company.technologies.append(row)

    def _merge_staff(self, company: DBCompany, record: NormalizedEnrichmentRecord):
        by_email: dict[str, DBStaffMember] = {}
        by_name: dict[str, DBStaffMember] = {}

        def index(member: DBStaffMember):
            email = _staff_email(member.email)
            name = _staff_name(member.first_name, member.last_name)
            if email:
                by_email.setdefault(email, member)
            if name:
                by_name.setdefault(name, member)

        for member in company.staff:
            index(member)

        for person in record.staff:
            email = _staff_email(person.email)
            name = _staff_name(person.first_name, person.last_name)
            if not email and not name:
                continue
            member = by_email.get(email) if email else None
            if member is None and name:
                candidate = by_name.get(name)
                # Same name with a different known email is a different person
                if candidate is not None and not (email and _staff_email(candidate.email)):
                    member = candidate
            if member is None:
                member = DBStaffMember()
                company.staff.append(member)
            for attr in ("first_name", "last_name", "title", "department", "email", "phone", "linkedin_url"):
                _fill(member, attr, getattr(person, attr))
            index(member)

    def _merge_industries(self, company: DBCompany, record: NormalizedEnrichmentRecord) -> list[str]:
        """Link canonical industries. Returns warnings for labels that did not resolve."""
        warnings = []
        wanted: list[tuple[str, str, str]] = []

        for label in record.company.categories:
            industry = resolve_label(label)
            if industry is None:
                warnings.append(f"Unresolved industry category {label!r}")
                continue
            wanted.append((industry.code, industry.title, ""))

        for claim in record.company.industry_claims:
            industry = resolve_industry(claim.code, claim.title)
            if industry is None:
                warnings.append(
                    f"Unresolved industry claim code={claim.code!r} title={claim.title!r}"
                )
                continue
            wanted.append((industry.code, industry.title, ""))
            for sub in claim.sub_industries:
                if industry.allows(sub):
                    wanted.append((industry.code, industry.title, sub))
                else:
                    warnings.append(f"Sub-industry {sub!r} is not listed under {industry.code}")

        existing = {(i.industry_code, i.sub_industry or "") for i in company.industries}
        for code, title, sub in wanted:
            if (code, sub) in existing:
                continue
            existing.add((code, sub))
            company.industries.append(DBIndustryAssociation(
                industry_code=code,
                industry_title=title,
                sub_industry=sub,
                taxonomy_version=TAXONOMY_VERSION,
                is_primary=not company.industries,
            ))

        for warning in warnings:
            logger.warning(f"{company.normalized_website}: {warning}")
        return warnings

    @staticmethod
    def _enrichment(
        record: NormalizedEnrichmentRecord,
        raw_payload: Optional[Any],
        source: Optional[str],
        now: datetime,
    ) -> DBEnrichment:
        meta = record.metadata
        if source is None:
            source = "enhanced_enrichment" if meta.enhanced else "basic_enrichment"
        return DBEnrichment(
            source=source,
            mode=meta.mode,
            payload_shape=record.shape.value if record.shape else None,
            pages_scraped=meta.pages_scraped,
            total_pages_found=meta.total_pages_found,
            scraped_at=meta.scraped_at,
            enriched_at=now,
            data=json.dumps(raw_payload, default=str) if raw_payload is not None else None,
        )

    @staticmethod
    def _failure(message: str, dry_run: bool, warnings: Optional[list[str]] = None) -> ResolveOutcome:
        logger.error(f"Resolution failed: {message}")
        return ResolveOutcome(error=message, dry_run=dry_run, warnings=list(warnings or []))


def _fill(obj: Any, attr: str, value: Any) -> bool:
    """Set ``attr`` only if it is empty and ``value`` is not."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return False
    current = getattr(obj, attr)
    if current is None or (isinstance(current, str) and not current.strip()):
        setattr(obj, attr, value.strip() if isinstance(value, str) else value)
        return True
    return False


def _primary_location(addresses: list[AddressInfo]) -> Optional[AddressInfo]:
    for address in addresses:
        if address.is_headquarters:
            return address
    return addresses[0] if addresses else None


def _location_key_parts(address: AddressInfo) -> tuple[Optional[str], Optional[str], Optional[str]]:
    city = address.city.strip() if address.city and address.city.strip() else None
    return (
        city,
        normalize_state_province(address.state_province, address.country),
        normalize_country(address.country),
    )


def _address_key(city, state, country, full_address) -> tuple:
    parts = tuple((value or "").strip().lower() for value in (city, state, country))
    if any(parts):
        return parts
    # No structured location: fall back to the free-text address
    return ("", "", "", (full_address or "").strip().lower())


def _staff_email(email) -> str:
    return email.strip().lower() if email and email.strip() else ""


def _staff_name(first_name, last_name) -> str:
    return " ".join(part.strip().lower() for part in (first_name, last_name) if part and part.strip())


def _is_identity_conflict(error: IntegrityError) -> bool:
    """True when the violated constraint is the unique company identity."""
    return "normalized_website" in str(error.orig)
