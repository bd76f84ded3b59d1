"""Classification payload normalization.

Payloads from the Classification Source come in several layouts depending on
the worker version that produced them. Detection walks ``SHAPE_PATHS`` in
order and takes the first location holding both a ``company`` and a
``contact`` object. A new layout is supported by adding a ``PayloadShape``
member and its path here.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from bizdir.errors import UnrecognizedShape
from bizdir.models import (
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

logger = logging.getLogger(__name__)

SHAPE_PATHS: tuple[tuple[PayloadShape, tuple[str, ...]], ...] = (
    (PayloadShape.DATA_WRAPPED, ("data",)),
    (PayloadShape.ROOT, ()),
    (PayloadShape.DOUBLE_WRAPPED, ("data", "data")),
    (PayloadShape.LEGACY_FINAL_RESULT, ("data", "finalResult")),
)

# Where a batch job may put its list of per-hit verdicts
BATCH_PATHS: tuple[tuple[str, ...], ...] = (
    (),
    ("businesses",),
    ("data",),
    ("data", "businesses"),
)


def detect_shape(payload: Any) -> tuple[PayloadShape, Mapping]:
    """Return the first matching shape and the body it points at."""
    if isinstance(payload, Mapping):
        for shape, path in SHAPE_PATHS:
            body = _descend(payload, path)
            if body is not None and _has_company_and_contact(body):
                return shape, body
        raise UnrecognizedShape(sorted(str(key) for key in payload))
    raise UnrecognizedShape([])


def normalize_payload(
    payload: Any,
    fallback_website: Optional[str] = None,
) -> NormalizedEnrichmentRecord:
    """Turn a raw classification payload into a ``NormalizedEnrichmentRecord``.

    Args:
        payload: The ``result`` of a completed enrichment job
        fallback_website: URL the job was submitted for, used when the
            payload itself carries no website

    Raises:
        UnrecognizedShape: if no known layout matches
    """
    shape, body = detect_shape(payload)
    envelope = _descend(payload, ("data",)) if shape is PayloadShape.LEGACY_FINAL_RESULT else None
    logger.debug(f"Detected payload shape {shape.value}")

    company = _mapping(body.get("company"))
    analysis = _mapping(body.get("analysis"))
    contact = _mapping(body.get("contact"))
    metadata = _mapping(body.get("metadata"))
    inputs = _mapping(body.get("input")) or _mapping((envelope or {}).get("input"))

    website = (
        _text(company.get("website"))
        or _text(metadata.get("baseUrl"))
        or _text(inputs.get("websiteUrl"))
        or _text(fallback_website)
    )

    return NormalizedEnrichmentRecord(
        company=_extract_company(body, company, analysis, website),
        analysis=_extract_analysis(analysis),
        contact=_extract_contact(contact),
        staff=_extract_staff(body.get("staff")),
        technologies=_extract_technologies(body.get("technologies")),
        metadata=_extract_metadata(metadata, inputs),
        shape=shape,
    )


def normalize_batch_verdicts(payload: Any) -> list[BatchVerdict]:
    """Extract per-hit verdicts from the result of a search-results job."""
    for path in BATCH_PATHS:
        items = _descend_any(payload, path)
        if isinstance(items, list):
            return [_extract_verdict(item) for item in items if isinstance(item, Mapping)]
    keys = sorted(str(key) for key in payload) if isinstance(payload, Mapping) else []
    raise UnrecognizedShape(keys)


def _extract_company(
    body: Mapping,
    company: Mapping,
    analysis: Mapping,
    website: Optional[str],
) -> CompanyInfo:
    categories = []
    claims = []
    for category in _list(company.get("categories")):
        if isinstance(category, Mapping):
            claims.append(_extract_claim(category))
        elif _text(category):
            categories.append(_text(category))

    structured = company.get("industryCategories") or body.get("industryCategories")
    for item in _list(structured):
        if isinstance(item, Mapping):
            claims.append(_extract_claim(item))

    return CompanyInfo(
        name=_text(company.get("name")) or _text(analysis.get("companyName")),
        website=website,
        description=_text(company.get("description")) or _text(analysis.get("description")),
        categories=_unique(categories),
        services=_str_list(company.get("services")) or _str_list(analysis.get("services")),
        industry_claims=claims,
    )


def _extract_claim(item: Mapping) -> IndustryClaim:
    return IndustryClaim(
        code=_text(item.get("code")),
        title=_text(item.get("title")) or _text(item.get("name")),
        sub_industries=_str_list(item.get("subIndustries") or item.get("subcategories")),
    )


def _extract_analysis(analysis: Mapping) -> Analysis:
    return Analysis(
        is_business=_tri_state(analysis.get("isBusiness")),
        confidence=_confidence(analysis.get("confidence")),
        reasoning=_text(analysis.get("reasoning")),
        business_type=_text(analysis.get("businessType")),
    )


def _extract_contact(contact: Mapping) -> ContactInfo:
    primary = _mapping(contact.get("primary"))

    emails = [e.lower() for e in _str_list(primary.get("emails")) + _str_list(contact.get("emails"))]
    phones = _phone_list(primary.get("phones")) + _phone_list(contact.get("phones"))

    addresses = []
    for item in _list(contact.get("addresses")) + _list(contact.get("locations")):
        address = _extract_address(item)
        if address is not None:
            addresses.append(address)

    social = {}
    for platform, url in _mapping(contact.get("social")).items():
        if _text(url):
            social[str(platform).strip().lower()] = _text(url)

    departments = []
    for item in _list(contact.get("departments")):
        if isinstance(item, Mapping):
            departments.append(DepartmentContact(
                name=_text(item.get("name")),
                description=_text(item.get("description")),
                emails=[e.lower() for e in _str_list(item.get("emails"))],
                phones=_phone_list(item.get("phones")),
            ))

    return ContactInfo(
        emails=_unique(emails),
        phones=_unique(phones),
        contact_page=_text(primary.get("contactPage")),
        addresses=addresses,
        social=social,
        departments=departments,
    )


def _extract_address(item: Any) -> Optional[AddressInfo]:
    if isinstance(item, str):
        return AddressInfo(full_address=item.strip()) if item.strip() else None
    if not isinstance(item, Mapping):
        return None

    address = AddressInfo(
        type=_text(item.get("type")),
        full_address=_text(item.get("fullAddress")) or _text(item.get("address")),
        street_address=_text(item.get("streetAddress")),
        city=_text(item.get("city")),
        state_province=_text(item.get("stateProvince")) or _text(item.get("state")),
        country=_text(item.get("country")),
        postal_code=(
            _text(item.get("zipCode"))
            or _text(item.get("zipPostalCode"))
            or _text(item.get("postalCode"))
        ),
    )
    if not any([address.full_address, address.city, address.state_province, address.country]):
        return None
    return address


def _extract_staff(staff: Any) -> list[StaffInfo]:
    members = staff.get("staff") if isinstance(staff, Mapping) else staff
    result = []
    for member in _list(members):
        if not isinstance(member, Mapping):
            continue
        first_name = _text(member.get("firstName"))
        last_name = _text(member.get("lastName"))
        full_name = _text(member.get("name"))
        if full_name and (not first_name or not last_name):
            parts = full_name.split()
            first_name = first_name or parts[0]
            last_name = last_name or (" ".join(parts[1:]) or None)

        email = _text(member.get("email"))
        info = StaffInfo(
            first_name=first_name,
            last_name=last_name,
            title=_text(member.get("title")),
            department=_text(member.get("department")),
            email=email.lower() if email else None,
            phone=_text(member.get("phone")),
            linkedin_url=_text(member.get("linkedinUrl")) or _text(member.get("linkedin")),
        )
        if info.email or info.first_name or info.last_name:
            result.append(info)
    return result


def _extract_technologies(technologies: Any) -> list[TechnologyInfo]:
    if isinstance(technologies, Mapping):
        technologies = technologies.get("technologies", technologies)

    result = []
    if isinstance(technologies, Mapping):
        for category, names in technologies.items():
            for name in _str_list(names):
                result.append(TechnologyInfo(name=name, category=str(category)))
    else:
        for item in _list(technologies):
            if isinstance(item, Mapping) and _text(item.get("name")):
                result.append(TechnologyInfo(
                    name=_text(item.get("name")), category=_text(item.get("category"))
                ))
            elif _text(item):
                result.append(TechnologyInfo(name=_text(item)))
    return result


def _extract_metadata(metadata: Mapping, inputs: Mapping) -> ScrapeMetadata:
    mode = _text(metadata.get("mode"))
    options = _mapping(inputs.get("options"))
    enhanced = mode == "enhanced" or (
        options.get("basicMode") is False
        and any(
            options.get(flag)
            for flag in ("includeStaffEnrichment", "includeExternalEnrichment", "includeIntelligence")
        )
    )
    return ScrapeMetadata(
        mode=mode,
        base_url=_text(metadata.get("baseUrl")),
        pages_scraped=_int(metadata.get("pagesScraped")),
        total_pages_found=_int(metadata.get("totalPagesFound")),
        scraped_at=_timestamp(metadata.get("scrapedAt")),
        enhanced=enhanced,
    )


def _extract_verdict(item: Mapping) -> BatchVerdict:
    return BatchVerdict(
        is_company_website=_tri_state(item.get("isCompanyWebsite")),
        confidence=_confidence(item.get("confidence")),
        company_name=_text(item.get("companyName")),
        website=_text(item.get("website")) or _text(item.get("url")),
        extracted_from=_text(item.get("extractedFrom")),
        position=_int(item.get("position")) if item.get("position") is not None else None,
        city=_text(item.get("city")),
        state_province=_text(item.get("stateProvince")),
        country=_text(item.get("country")),
        categories=_str_list(item.get("categories")),
        reasoning=_text(item.get("reasoning")),
    )


def _descend(payload: Any, path: tuple[str, ...]) -> Optional[Mapping]:
    node = _descend_any(payload, path)
    return node if isinstance(node, Mapping) else None


def _descend_any(payload: Any, path: tuple[str, ...]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _has_company_and_contact(body: Mapping) -> bool:
    return isinstance(body.get("company"), Mapping) and isinstance(body.get("contact"), Mapping)


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (bool, Mapping, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    return _unique([t for t in (_text(item) for item in _list(value)) if t])


def _phone_list(value: Any) -> list[str]:
    phones = []
    for item in _list(value) if not isinstance(value, str) else [value]:
        number = _text(item.get("number")) if isinstance(item, Mapping) else _text(item)
        if number:
            phones.append(number)
    return phones


def _unique(values: list[str]) -> list[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _tri_state(value: Any) -> Optional[bool]:
    """Only JSON booleans count as answers; strings like "yes" are unknown."""
    if isinstance(value, bool):
        return value
    return None


def _confidence(value: Any) -> Optional[float]:
    """Confidence in 0..1. Values in (1, 100] are read as percentages."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    if 1.0 < number <= 100.0:
        number /= 100.0
    return max(0.0, min(number, 1.0))


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _timestamp(value: Any) -> Optional[datetime]:
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
