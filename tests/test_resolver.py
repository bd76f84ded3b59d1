"""Tests for business resolution and merge."""

import json
import threading

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from bizdir.enrich.normalizer import normalize_payload
from bizdir.enrich.resolver import BusinessResolver
from bizdir.models.database import (
    DBAddress,
    DBCompany,
    DBContact,
    DBEnrichment,
    DBIndustryAssociation,
    DBSocialProfile,
    DBStaffMember,
)


def resolve(resolver, payload, **kwargs):
    return resolver.resolve(normalize_payload(payload), raw_payload=payload, **kwargs)


def all_companies(session_factory):
    with session_factory() as session:
        return session.query(DBCompany).all()


def count(session_factory, model):
    with session_factory() as session:
        return session.query(model).count()


def load(session_factory, company_id):
    with session_factory() as session:
        return session.get(DBCompany, company_id)


@pytest.fixture
def resolver(session_factory):
    return BusinessResolver(session_factory, min_confidence=0.7)


class TestGate:
    """Tests for the classification gate."""

    @pytest.mark.parametrize("is_business", [False, None, "unsure", "true", "yes"])
    def test_non_business_is_skipped(self, resolver, session_factory, make_payload, is_business):
        outcome = resolve(resolver, make_payload(is_business=is_business))
        assert outcome.skipped
        assert outcome.success
        assert outcome.skip_reason
        assert all_companies(session_factory) == []

    def test_skip_reason_carries_reasoning(self, resolver, make_payload):
        outcome = resolve(resolver, make_payload(is_business=False))
        assert "Sells services to customers" in outcome.skip_reason

    def test_directory_site_is_skipped(self, resolver, session_factory, make_payload):
        payload = make_payload()
        payload["data"]["analysis"]["businessType"] = "directory"
        outcome = resolve(resolver, payload)
        assert outcome.skipped
        assert all_companies(session_factory) == []

    def test_low_confidence_is_skipped(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, make_payload(confidence=0.3))
        assert outcome.skipped
        assert "0.30" in outcome.skip_reason and "0.70" in outcome.skip_reason
        assert all_companies(session_factory) == []

    def test_threshold_override(self, resolver, make_payload):
        outcome = resolve(resolver, make_payload(confidence=0.3), min_confidence=0.2)
        assert outcome.created

    def test_missing_confidence_is_not_gated(self, resolver, make_payload):
        outcome = resolve(resolver, make_payload(confidence=None))
        assert outcome.created


class TestCreateAndMerge:
    """Tests for identity resolution and scalar merge."""

    def test_create(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, make_payload(emails=["info@example.com"], phones=["+1-555-0199"]))

        assert outcome.created and not outcome.updated
        company = load(session_factory, outcome.company_id)
        assert company.normalized_website == "example.com"
        assert company.name == "Example Co"
        assert company.primary_email == "info@example.com"
        assert company.primary_phone == "+1-555-0199"
        assert company.classification_confidence == pytest.approx(0.9)
        assert company.last_enriched_at is not None

    def test_idempotent_create(self, resolver, session_factory, make_payload):
        payload = make_payload(emails=["info@example.com"])
        first = resolve(resolver, payload)
        second = resolve(resolver, payload)

        assert first.created
        assert second.updated and not second.created
        assert first.company_id == second.company_id
        assert len(all_companies(session_factory)) == 1
        assert count(session_factory, DBContact) == 1

    def test_missing_email_preserves_existing(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload(emails=["info@example.com"]))
        resolve(resolver, make_payload(emails=[], description="Now with a description"))

        company = load(session_factory, first.company_id)
        assert company.primary_email == "info@example.com"
        assert company.description == "Now with a description"

    def test_populated_field_not_replaced(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload(description="Original"))
        resolve(resolver, make_payload(description="Different"))
        assert load(session_factory, first.company_id).description == "Original"

    def test_same_site_different_spelling(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload(website="https://WWW.Example.com/", name="Example Co"))
        second = resolve(resolver, make_payload(website="https://example.com", name=None, phones=["+1-555-0100"]))

        assert first.created and second.updated
        companies = all_companies(session_factory)
        assert len(companies) == 1
        assert companies[0].name == "Example Co"
        assert companies[0].primary_phone == "+1-555-0100"

    def test_name_match_under_other_url(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload(website="https://example.com", name="Example Co"))
        second = resolve(resolver, make_payload(website="https://example-co.net", name="EXAMPLE CO"))

        assert second.updated
        assert second.company_id == first.company_id
        assert len(all_companies(session_factory)) == 1

    def test_refreshable_fields_update(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload())
        before = load(session_factory, first.company_id).last_enriched_at
        resolve(resolver, make_payload())
        after = load(session_factory, first.company_id).last_enriched_at
        assert after >= before

    def test_new_company_needs_name(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, make_payload(name=None))
        assert not outcome.success
        assert "name" in outcome.error
        assert all_companies(session_factory) == []

    def test_record_without_website_fails(self, resolver, make_payload):
        outcome = resolve(resolver, make_payload(website=None))
        assert not outcome.success
        assert outcome.company_id is None


class TestChildren:
    """Tests for child collection merge."""

    def rich_payload(self, make_payload, **contact):
        payload = make_payload(emails=["info@example.com"], services=["Roof repair", "Gutters"])
        payload["data"]["contact"].update(contact)
        return payload

    def test_addresses_deduplicated_case_insensitively(self, resolver, session_factory, make_payload):
        first = resolve(resolver, self.rich_payload(make_payload, addresses=[
            {"type": "Headquarters", "city": "Austin", "state": "TX", "country": "US"},
        ]))
        resolve(resolver, self.rich_payload(make_payload, addresses=[
            {"city": "AUSTIN", "stateProvince": "texas", "country": "united states"},
            {"city": "Dallas", "state": "TX", "country": "US"},
        ]))

        with session_factory() as session:
            addresses = session.query(DBAddress).order_by(DBAddress.id).all()
            assert [a.city for a in addresses] == ["Austin", "Dallas"]
            assert addresses[0].state_province == "Texas"
            assert addresses[0].country == "United States"
            assert addresses[0].is_primary

        company = load(session_factory, first.company_id)
        assert (company.city, company.state_province, company.country) == ("Austin", "Texas", "United States")

    def test_headquarters_is_primary_location(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, self.rich_payload(make_payload, locations=[
            {"type": "branch", "city": "Dallas", "state": "TX", "country": "US"},
            {"type": "Corporate Office", "city": "Toronto", "state": "ON", "country": "CA"},
        ]))
        company = load(session_factory, outcome.company_id)
        assert (company.city, company.state_province, company.country) == ("Toronto", "Ontario", "Canada")

    def test_contacts_and_socials(self, resolver, session_factory, make_payload):
        resolve(resolver, self.rich_payload(
            make_payload,
            social={"linkedin": "https://linkedin.com/company/example"},
            departments=[{"name": "Sales", "emails": ["sales@example.com"]}],
        ))
        payload = self.rich_payload(
            make_payload,
            social={"LinkedIn": "https://linkedin.com/company/other", "facebook": "https://fb.com/example"},
        )
        payload["data"]["contact"]["primary"]["emails"] = ["INFO@example.com"]
        payload["data"]["contact"]["primary"]["contactPage"] = "https://example.com/contact"
        resolve(resolver, payload)

        with session_factory() as session:
            contacts = {(c.type, c.value, c.label) for c in session.query(DBContact).all()}
            socials = {s.platform: s.url for s in session.query(DBSocialProfile).all()}

        assert contacts == {
            ("email", "info@example.com", None),
            ("email", "sales@example.com", "Sales"),
            ("url", "https://example.com/contact", "Contact page"),
        }
        assert socials == {
            "linkedin": "https://linkedin.com/company/example",
            "facebook": "https://fb.com/example",
        }

    def test_services_and_technologies(self, resolver, session_factory, make_payload):
        first = resolve(resolver, self.rich_payload(make_payload))
        payload = make_payload(services=["roof repair", "Inspections"])
        payload["data"]["technologies"] = [{"name": "WordPress", "category": "cms"}, "wordpress"]
        resolve(resolver, payload)

        company_id = first.company_id
        with session_factory() as session:
            company = session.get(DBCompany, company_id)
            assert sorted(s.name for s in company.services) == ["Gutters", "Inspections", "Roof repair"]
            assert [(t.name, t.category) for t in company.technologies] == [("WordPress", "cms")]

    def test_staff_filled_not_blanked(self, resolver, session_factory, make_payload):
        payload = make_payload()
        payload["data"]["staff"] = [{"firstName": "Jane", "lastName": "Smith", "email": "jane@example.com"}]
        resolve(resolver, payload)

        payload = make_payload()
        payload["data"]["staff"] = [
            {"name": "Jane Smith", "email": "JANE@example.com", "title": "Owner"},
            {"firstName": "Bob", "lastName": "Jones"},
        ]
        resolve(resolver, payload)

        with session_factory() as session:
            staff = {m.email or m.first_name: m for m in session.query(DBStaffMember).all()}
        assert set(staff) == {"jane@example.com", "Bob"}
        assert staff["jane@example.com"].title == "Owner"
        assert staff["jane@example.com"].first_name == "Jane"

    def test_staff_without_email_matches_by_name(self, resolver, session_factory, make_payload):
        payload = make_payload()
        payload["data"]["staff"] = [{"firstName": "John", "lastName": "Doe", "email": "john@example.com"}]
        resolve(resolver, payload)

        payload = make_payload()
        payload["data"]["staff"] = [{"firstName": "John", "lastName": "Doe", "title": "CEO"}]
        resolve(resolver, payload)

        with session_factory() as session:
            staff = session.query(DBStaffMember).all()
        assert len(staff) == 1
        assert staff[0].email == "john@example.com"
        assert staff[0].title == "CEO"

    def test_same_name_different_email_is_new_person(self, resolver, session_factory, make_payload):
        payload = make_payload()
        payload["data"]["staff"] = [{"firstName": "John", "lastName": "Doe", "email": "john@example.com"}]
        resolve(resolver, payload)

        payload = make_payload()
        payload["data"]["staff"] = [{"firstName": "John", "lastName": "Doe", "email": "jdoe@other.example"}]
        resolve(resolver, payload)

        assert count(session_factory, DBStaffMember) == 2

    def test_enrichment_history(self, resolver, session_factory, make_payload):
        payload = make_payload()
        resolve(resolver, payload)
        resolve(resolver, payload)

        with session_factory() as session:
            history = session.query(DBEnrichment).all()
        assert len(history) == 2
        assert history[0].source == "basic_enrichment"
        assert history[0].payload_shape == "data"
        assert history[0].pages_scraped == 3
        assert json.loads(history[0].data) == payload


class TestIndustries:
    """Tests for canonical industry linking."""

    def test_resolved_and_unresolved(self, resolver, session_factory, make_payload):
        payload = make_payload(categories=["CONST - Construction & Building", "Roofing"])
        payload["data"]["industryCategories"] = [{
            "code": "CONST",
            "subIndustries": ["Renovation & Contracting", "Pool Cleaning"],
        }]
        outcome = resolve(resolver, payload)

        assert outcome.created
        assert any("Roofing" in w for w in outcome.warnings)
        assert any("Pool Cleaning" in w for w in outcome.warnings)
        with session_factory() as session:
            links = {(i.industry_code, i.sub_industry) for i in session.query(DBIndustryAssociation).all()}
        assert links == {("CONST", ""), ("CONST", "Renovation & Contracting")}

    def test_unresolved_only_does_not_block(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, make_payload(categories=["Basket Weaving"]))
        assert outcome.created
        assert count(session_factory, DBIndustryAssociation) == 0

    def test_industries_not_duplicated(self, resolver, session_factory, make_payload):
        payload = make_payload(categories=["TECH", "Technology & Software"])
        resolve(resolver, payload)
        resolve(resolver, payload)
        assert count(session_factory, DBIndustryAssociation) == 1


class TestDryRun:
    """Tests for dry-run resolution."""

    def test_create_commits_nothing(self, resolver, session_factory, make_payload):
        outcome = resolve(resolver, make_payload(), dry_run=True)
        assert outcome.created and outcome.dry_run
        assert outcome.company_id is None
        assert all_companies(session_factory) == []
        assert count(session_factory, DBEnrichment) == 0

    def test_merge_commits_nothing(self, resolver, session_factory, make_payload):
        first = resolve(resolver, make_payload())
        outcome = resolve(resolver, make_payload(phones=["+1-555-0100"]), dry_run=True)

        assert outcome.updated
        assert outcome.company_id == first.company_id
        assert load(session_factory, first.company_id).primary_phone is None
        assert count(session_factory, DBContact) == 0


class TestConcurrency:
    """Tests for same-identity races."""

    def test_parallel_same_identity(self, resolver, session_factory, make_payload):
        barrier = threading.Barrier(4)
        outcomes = []

        def worker(index):
            payload = make_payload(website="https://www.example.com/", phones=[f"+1-555-010{index}"])
            barrier.wait()
            outcomes.append(resolve(resolver, payload))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(all_companies(session_factory)) == 1
        assert sum(o.created for o in outcomes) == 1
        assert sum(o.updated for o in outcomes) == 3
        assert count(session_factory, DBContact) == 4

    def test_constraint_conflict_retried_as_merge(self, resolver, session_factory, make_payload, monkeypatch):
        first = resolve(resolver, make_payload())
        original = resolver._find_existing
        calls = []

        def stale_lookup(session, identity, name):
            # First attempt misses the row another writer committed
            calls.append(identity)
            return None if len(calls) == 1 else original(session, identity, name)

        monkeypatch.setattr(resolver, "_find_existing", stale_lookup)
        outcome = resolve(resolver, make_payload(phones=["+1-555-0100"]))

        assert len(calls) == 2
        assert outcome.updated
        assert outcome.company_id == first.company_id
        assert load(session_factory, first.company_id).primary_phone == "+1-555-0100"
        assert len(all_companies(session_factory)) == 1

    def test_conflict_retries_exhausted(self, session_factory, make_payload, monkeypatch):
        resolver = BusinessResolver(session_factory, max_conflict_retries=2)
        resolve(resolver, make_payload())
        monkeypatch.setattr(resolver, "_find_existing", lambda session, identity, name: None)

        outcome = resolve(resolver, make_payload())

        assert not outcome.success
        assert "after 2 attempts" in outcome.error
        assert len(all_companies(session_factory)) == 1

    def test_other_constraint_is_not_retried(self, resolver, make_payload, monkeypatch):
        calls = []

        def failing_write(session, *args):
            calls.append(1)
            raise IntegrityError(
                "INSERT INTO contacts", {}, Exception("UNIQUE constraint failed: contacts.value")
            )

        monkeypatch.setattr(resolver, "_write", failing_write)
        outcome = resolve(resolver, make_payload())

        assert len(calls) == 1
        assert not outcome.success
        assert "contacts.value" in outcome.error


class TestOwnership:
    """Tests for cascade delete of owned children."""

    def populated(self, resolver, make_payload):
        payload = make_payload(emails=["info@example.com"], services=["Roofing"], categories=["CONST"])
        payload["data"]["contact"]["addresses"] = [{"city": "Austin", "state": "TX", "country": "US"}]
        payload["data"]["contact"]["social"] = {"x": "https://x.com/example"}
        return resolve(resolver, payload).company_id

    def test_orm_delete_removes_children(self, resolver, session_factory, make_payload):
        company_id = self.populated(resolver, make_payload)
        with session_factory() as session:
            session.delete(session.get(DBCompany, company_id))
            session.commit()
        for model in (DBAddress, DBContact, DBSocialProfile, DBIndustryAssociation, DBEnrichment):
            assert count(session_factory, model) == 0

    def test_database_delete_cascades(self, resolver, session_factory, make_payload):
        company_id = self.populated(resolver, make_payload)
        with session_factory() as session:
            session.execute(text("DELETE FROM companies WHERE id = :id"), {"id": company_id})
            session.commit()
        for model in (DBAddress, DBContact, DBSocialProfile, DBIndustryAssociation, DBEnrichment):
            assert count(session_factory, model) == 0
