"""Country and state/province code to display-name mapping."""

from types import MappingProxyType
from typing import Optional

LOCATION_TABLE_VERSION = "2024.1"

COUNTRY_NAMES = MappingProxyType({
    "US": "United States", "USA": "United States", "CA": "Canada",
    "UK": "United Kingdom", "GB": "United Kingdom", "AU": "Australia",
    "DE": "Germany", "FR": "France", "IT": "Italy", "ES": "Spain",
    "NL": "Netherlands", "BE": "Belgium", "CH": "Switzerland", "AT": "Austria",
    "SE": "Sweden", "NO": "Norway", "DK": "Denmark", "FI": "Finland",
    "PL": "Poland", "CZ": "Czech Republic", "HU": "Hungary", "RO": "Romania",
    "BG": "Bulgaria", "HR": "Croatia", "SI": "Slovenia", "SK": "Slovakia",
    "LT": "Lithuania", "LV": "Latvia", "EE": "Estonia", "IE": "Ireland",
    "PT": "Portugal", "GR": "Greece", "CY": "Cyprus", "MT": "Malta",
    "LU": "Luxembourg", "IS": "Iceland", "LI": "Liechtenstein", "MC": "Monaco",
    "SM": "San Marino", "VA": "Vatican City", "AD": "Andorra",
    "JP": "Japan", "CN": "China", "KR": "South Korea", "IN": "India",
    "BR": "Brazil", "MX": "Mexico", "AR": "Argentina", "CL": "Chile",
    "CO": "Colombia", "PE": "Peru", "VE": "Venezuela", "UY": "Uruguay",
    "PY": "Paraguay", "BO": "Bolivia", "EC": "Ecuador", "GY": "Guyana",
    "SR": "Suriname", "GF": "French Guiana", "FK": "Falkland Islands",
    "ZA": "South Africa", "EG": "Egypt", "NG": "Nigeria", "KE": "Kenya",
    "GH": "Ghana", "UG": "Uganda", "TZ": "Tanzania", "ET": "Ethiopia",
    "DZ": "Algeria", "MA": "Morocco", "TN": "Tunisia", "LY": "Libya",
    "SD": "Sudan", "TD": "Chad", "NE": "Niger", "ML": "Mali",
    "BF": "Burkina Faso", "CI": "Ivory Coast", "SN": "Senegal", "GN": "Guinea",
    "SL": "Sierra Leone", "LR": "Liberia", "TG": "Togo", "BJ": "Benin",
    "CM": "Cameroon", "CF": "Central African Republic",
    "CG": "Republic of the Congo", "CD": "Democratic Republic of the Congo",
    "GA": "Gabon", "GQ": "Equatorial Guinea", "ST": "Sao Tome and Principe",
    "AO": "Angola", "ZM": "Zambia", "ZW": "Zimbabwe", "BW": "Botswana",
    "NA": "Namibia", "SZ": "Eswatini", "LS": "Lesotho", "MG": "Madagascar",
    "MU": "Mauritius", "SC": "Seychelles", "KM": "Comoros", "DJ": "Djibouti",
    "SO": "Somalia", "ER": "Eritrea", "YE": "Yemen", "OM": "Oman",
    "AE": "United Arab Emirates", "QA": "Qatar", "BH": "Bahrain", "KW": "Kuwait",
    "SA": "Saudi Arabia", "JO": "Jordan", "LB": "Lebanon", "SY": "Syria",
    "IQ": "Iraq", "IR": "Iran", "AF": "Afghanistan", "PK": "Pakistan",
    "BD": "Bangladesh", "LK": "Sri Lanka", "MV": "Maldives", "NP": "Nepal",
    "BT": "Bhutan", "MM": "Myanmar", "TH": "Thailand", "LA": "Laos",
    "KH": "Cambodia", "VN": "Vietnam", "MY": "Malaysia", "SG": "Singapore",
    "ID": "Indonesia", "PH": "Philippines", "TW": "Taiwan", "HK": "Hong Kong",
    "MO": "Macau", "MN": "Mongolia", "KZ": "Kazakhstan", "UZ": "Uzbekistan",
    "KG": "Kyrgyzstan", "TJ": "Tajikistan", "TM": "Turkmenistan",
    "AZ": "Azerbaijan", "GE": "Georgia", "AM": "Armenia", "TR": "Turkey",
    "IL": "Israel", "PS": "Palestine", "RU": "Russia", "BY": "Belarus",
    "UA": "Ukraine", "MD": "Moldova", "RS": "Serbia", "ME": "Montenegro",
    "BA": "Bosnia and Herzegovina", "MK": "North Macedonia", "AL": "Albania",
    "XK": "Kosovo", "NZ": "New Zealand",
})

US_STATES = MappingProxyType({
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
    "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska",
    "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey",
    "NM": "New Mexico", "NY": "New York", "NC": "North Carolina",
    "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma", "OR": "Oregon",
    "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington",
    "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
    "DC": "District of Columbia", "AS": "American Samoa", "GU": "Guam",
    "MP": "Northern Mariana Islands", "PR": "Puerto Rico",
    "VI": "U.S. Virgin Islands",
})

CA_PROVINCES = MappingProxyType({
    "AB": "Alberta", "BC": "British Columbia", "MB": "Manitoba",
    "NB": "New Brunswick", "NL": "Newfoundland and Labrador",
    "NS": "Nova Scotia", "NT": "Northwest Territories", "NU": "Nunavut",
    "ON": "Ontario", "PE": "Prince Edward Island", "QC": "Quebec",
    "SK": "Saskatchewan", "YT": "Yukon",
})

AU_STATES = MappingProxyType({
    "ACT": "Australian Capital Territory", "NSW": "New South Wales",
    "NT": "Northern Territory", "QLD": "Queensland", "SA": "South Australia",
    "TAS": "Tasmania", "VIC": "Victoria", "WA": "Western Australia",
})

UK_NATIONS = MappingProxyType({
    "ENG": "England", "SCT": "Scotland", "WLS": "Wales", "NIR": "Northern Ireland",
})

# Country display name -> subdivision table
REGION_TABLES = MappingProxyType({
    "United States": US_STATES,
    "Canada": CA_PROVINCES,
    "Australia": AU_STATES,
    "United Kingdom": UK_NATIONS,
})

_KNOWN_COUNTRY_NAMES = frozenset(name.lower() for name in COUNTRY_NAMES.values())


def normalize_country(country: Optional[str]) -> Optional[str]:
    """Map a country code to its display name. Unknown values pass through trimmed."""
    if not country or not country.strip():
        return None
    value = country.strip()
    if value.lower() in _KNOWN_COUNTRY_NAMES:
        return _canonical_country_name(value)
    return COUNTRY_NAMES.get(value.upper(), value)


def normalize_state_province(
    state: Optional[str],
    country: Optional[str],
) -> Optional[str]:
    """Map a subdivision code to its display name within the given country."""
    if not state or not state.strip():
        return None
    value = state.strip()
    table = REGION_TABLES.get(normalize_country(country) or "")
    if table is None:
        return value
    return table.get(value.upper(), value)


def _canonical_country_name(value: str) -> str:
    lowered = value.lower()
    for name in COUNTRY_NAMES.values():
        if name.lower() == lowered:
            return name
    return value
