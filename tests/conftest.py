"""Shared fixtures."""

import pytest

from bizdir.models.database import init_db


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite database per test."""
    return init_db(f"sqlite:///{tmp_path / 'bizdir-test.db'}")


def build_payload(
    website="https://example.com",
    name="Example Co",
    is_business=True,
    confidence=0.9,
    emails=None,
    phones=None,
    **company_fields,
):
    """A classification payload in the current ``data``-wrapped layout."""
    primary = {}
    if emails is not None:
        primary["emails"] = emails
    if phones is not None:
        primary["phones"] = phones
    company = {"name": name, "website": website, **company_fields}
    if name is None:
        del company["name"]
    return {
        "data": {
            "company": company,
            "analysis": {
                "isBusiness": is_business,
                "confidence": confidence,
                "reasoning": "Sells services to customers",
            },
            "contact": {"primary": primary},
            "metadata": {"mode": "basic", "pagesScraped": 3, "totalPagesFound": 7},
        }
    }


@pytest.fixture
def make_payload():
    return build_payload
