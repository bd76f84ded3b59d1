"""Canonical industry taxonomy.

The table is fixed and versioned. Resolution is exact: a code match wins over
a case-insensitive title match, and anything else resolves to nothing.
No keyword or fuzzy matching is attempted.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional

TAXONOMY_VERSION = "2024.1"


@dataclass(frozen=True)
class CanonicalIndustry:
    """One canonical industry with its allow-listed sub-industries."""

    code: str
    title: str
    description: str
    sub_industries: tuple[str, ...]

    def allows(self, sub_industry: Optional[str]) -> bool:
        """Literal membership in the allow-list."""
        return sub_industry in self.sub_industries


CANONICAL_INDUSTRIES: tuple[CanonicalIndustry, ...] = (
    CanonicalIndustry(
        "TECH", "Technology & Software",
        "Software, programming, IT services, digital platforms, computer services",
        ("Software & SaaS", "IT Services & Consulting", "Cybersecurity", "Cloud Computing",
         "AI & Data Science", "Hardware & Devices", "Networking & Infrastructure"),
    ),
    CanonicalIndustry(
        "MKTG", "Marketing & Advertising",
        "Marketing agencies, advertising, PR, digital marketing, media buying",
        ("Advertising Agencies", "Digital Marketing", "Public Relations",
         "Branding & Creative", "Market Research", "Media Buying"),
    ),
    CanonicalIndustry(
        "CONST", "Construction & Building",
        "Construction trades, contractors, builders, renovation, construction services",
        ("Residential Construction", "Commercial Construction",
         "Civil Engineering & Infrastructure", "Architecture & Design",
         "Building Materials", "Renovation & Contracting"),
    ),
    CanonicalIndustry(
        "HEALTH", "Healthcare & Medical",
        "Doctors, dentists, medical services, healthcare, medical practices",
        ("Hospitals & Clinics", "Physicians & Specialists", "Dentists & Orthodontics",
         "Nursing & Elder Care", "Diagnostic Labs", "Telehealth Services"),
    ),
    CanonicalIndustry(
        "BIOTECH", "Biotech & Life Sciences",
        "Pharmaceuticals, biotechnology, medical devices, research, life sciences",
        ("Pharmaceuticals", "Biotechnology R&D", "Medical Devices",
         "Genomics & Research", "Life Sciences Labs"),
    ),
    CanonicalIndustry(
        "FINANCE", "Financial & Banking",
        "Banks, credit unions, investment, insurance, financial services",
        ("Retail Banking", "Commercial Banking", "Payments & Credit Cards",
         "Investment Banking", "Wealth Management", "Credit Unions"),
    ),
    CanonicalIndustry(
        "INSURANCE", "Insurance & Risk Management",
        "Insurance, risk management, claims, insurance services",
        ("Health Insurance", "Life Insurance", "Auto Insurance", "Property & Casualty",
         "Reinsurance", "Claims Services"),
    ),
    CanonicalIndustry(
        "RETAIL", "Retail & Commerce",
        "Stores, e-commerce, shopping, consumer goods, retail services",
        ("Department Stores", "E-Commerce", "Supermarkets & Grocery", "Specialty Stores",
         "Convenience Stores", "Wholesale & Distribution"),
    ),
    CanonicalIndustry(
        "FOOD", "Food & Beverage",
        "Restaurants, catering, food services, dining, beverage services",
        ("Restaurants & Cafes", "Fast Food & Chains", "Catering Services",
         "Bars & Nightlife", "Coffee & Beverages"),
    ),
    CanonicalIndustry(
        "HOSP", "Hospitality & Travel",
        "Hotels, lodging, tourism, travel agencies, attractions, hospitality services",
        ("Hotels & Resorts", "Short-term Rentals", "Travel Agencies", "Tourism Boards",
         "Cruise Lines", "Attractions & Theme Parks"),
    ),
    CanonicalIndustry(
        "ENTERTAIN", "Entertainment & Recreation",
        "Entertainment, sports, recreation, events, leisure services",
        ("Sports Teams & Venues", "Events & Festivals", "Casinos & Gaming",
         "Recreation Centers", "Fitness & Gyms"),
    ),
    CanonicalIndustry(
        "ARTS", "Arts & Culture",
        "Museums, arts, cultural organizations, creative industries",
        ("Museums & Galleries", "Performing Arts", "Cultural Organizations",
         "Creative Arts & Design", "Nonprofit Arts"),
    ),
    CanonicalIndustry(
        "MEDIA", "Media & Publishing",
        "Publishing, film, television, radio, music, gaming, digital content",
        ("Film & TV", "Broadcasting & Streaming", "Music & Recording",
         "Publishing (Books, News, Magazines)", "Gaming & Esports", "Digital Media"),
    ),
    CanonicalIndustry(
        "TRANSPORT", "Transportation & Logistics",
        "Trucking, delivery, logistics, shipping, freight, warehousing",
        ("Trucking & Freight", "Shipping & Maritime", "Warehousing & Distribution",
         "Courier & Delivery", "Public Transit", "Rail Transport"),
    ),
    CanonicalIndustry(
        "AUTO", "Automotive",
        "Automakers, auto parts, vehicle sales, dealerships, repair, auto services",
        ("Vehicle Manufacturing", "Auto Parts Suppliers", "Dealerships",
         "Auto Repair & Services", "Car Rentals & Leasing"),
    ),
    CanonicalIndustry(
        "MFG", "Manufacturing & Production",
        "Factories, production, industrial manufacturing, product creation",
        ("Industrial Machinery", "Chemicals & Materials", "Metals & Mining",
         "Electronics Manufacturing", "Aerospace & Defense"),
    ),
    CanonicalIndustry(
        "AGRI", "Agriculture & Farming",
        "Farming, agriculture, livestock, crops, agricultural services",
        ("Crop Farming", "Livestock & Dairy", "Forestry & Logging",
         "Fisheries & Aquaculture", "Agricultural Services"),
    ),
    CanonicalIndustry(
        "ENERGY", "Energy & Utilities",
        "Power, energy, renewable energy, utilities, energy services",
        ("Oil & Gas", "Renewable Energy (Solar, Wind, Hydro)",
         "Utilities (Electricity, Water, Gas)", "Energy Equipment & Services"),
    ),
    CanonicalIndustry(
        "REALESTATE", "Real Estate & Property",
        "Real estate, property management, rentals, real estate services",
        ("Residential Real Estate", "Commercial Real Estate", "Property Management",
         "Real Estate Development", "Rental & Leasing Services"),
    ),
    CanonicalIndustry(
        "EDU", "Education & Training",
        "Schools, training, courses, learning, educational services",
        ("Primary & Secondary (K-12)", "Higher Education",
         "Vocational & Technical Training", "E-Learning & EdTech", "Tutoring Services"),
    ),
    CanonicalIndustry(
        "LEGAL", "Legal & Professional Services",
        "Law, accounting, consulting, professional services, legal services",
        ("Law Firms", "Accounting & Tax Services", "Consulting Firms",
         "Notaries & Compliance", "Intellectual Property Services"),
    ),
    CanonicalIndustry(
        "BUSINESS", "Business Services",
        "Administrative, HR, facilities, support services, business consulting",
        ("HR & Recruiting", "Administrative Services", "Facilities Management",
         "Outsourcing & BPO", "Business Consulting"),
    ),
    CanonicalIndustry(
        "TELECOM", "Telecommunications",
        "Phone, internet, mobile carriers, connectivity, telecom services",
        ("Mobile Carriers", "Internet Service Providers", "Cable & Satellite",
         "Network Infrastructure", "Data Centers"),
    ),
    CanonicalIndustry(
        "GOVT", "Government & Public Services",
        "Government, public administration, defense, public services",
        ("Local Government", "Federal & Provincial Government",
         "Public Safety & Emergency", "Defense & Military", "Utilities & Public Works"),
    ),
    CanonicalIndustry(
        "NONPROFIT", "Non-Profit & Social Services",
        "Charities, social services, non-profits, community services",
        ("Charitable Foundations", "NGOs & Advocacy", "Community Organizations",
         "Religious Organizations", "Cultural Nonprofits"),
    ),
)

_BY_CODE = MappingProxyType({ind.code: ind for ind in CANONICAL_INDUSTRIES})
_BY_TITLE = MappingProxyType({ind.title.lower(): ind for ind in CANONICAL_INDUSTRIES})


def resolve_industry(
    code: Optional[str] = None,
    title: Optional[str] = None,
) -> Optional[CanonicalIndustry]:
    """Resolve a code and/or title to a canonical industry, or None."""
    if code and code.strip():
        found = _BY_CODE.get(code.strip())
        if found:
            return found
    if title and title.strip():
        return _BY_TITLE.get(title.strip().lower())
    return None


def is_allowed_sub_industry(industry_code: str, sub_industry: str) -> bool:
    """True only if ``sub_industry`` is literally listed under the industry."""
    industry = _BY_CODE.get((industry_code or "").strip())
    return industry is not None and industry.allows(sub_industry)


def resolve_label(label: Optional[str]) -> Optional[CanonicalIndustry]:
    """Resolve a free-text category label.

    Accepts a bare code ("CONST"), a bare title ("Construction & Building"),
    or the "CODE - Title" pair format some payloads use.
    """
    if not label or not label.strip():
        return None
    text = label.strip()
    if " - " in text:
        code, _, title = text.partition(" - ")
        return resolve_industry(code, title)
    return resolve_industry(text, text)
