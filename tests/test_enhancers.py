"""Tests for the enhancement sub-steps."""

from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup

from editorial.enhancers import Enhancers, QUOTE_CLASS, _trim_meta
from editorial.image_pipeline import ImageResult
from editorial.link_transformer import LinkTransformer
from editorial.models import Draft, EnhancementConfig
from editorial.schema_builder import extract_json_ld, schema_types
from editorial.storage import InMemoryTable

BODY = (
    "<h2>Online MBA basics</h2>"
    "<p>Many online MBA programs are flexible for working adults.</p>"
    "<p>Tuition varies widely between public and private schools.</p>"
    "<p>Accreditation matters more than rankings for most employers.</p>"
    "<p>Financial aid is available for most accredited programs.</p>"
)

ALL_ON = EnhancementConfig(
    seo=True, internal_links=True, external_links=True,
    quotes=True, images=True, structured_data=True,
)


@pytest.fixture
def quote_store():
    store = InMemoryTable("quotes")
    store.create({"id": "q1", "text": "Accreditation is the first filter.", "author": "A. Dean",
                  "keywords": ["online mba"], "is_active": True})
    store.create({"id": "q2", "text": "Cost is not the same as value.", "source": "Survey",
                  "keywords": ["tuition"], "is_active": True})
    store.create({"id": "q3", "text": "Retired quote.", "keywords": ["online mba"], "is_active": False})
    return store


@pytest.fixture
def image_pipeline():
    pipeline = MagicMock()
    pipeline.generate_featured_image.return_value = ImageResult(
        path="/tmp/featured.webp", url="https://media.example.com/featured.webp",
        alt_text="Online MBA", width=1200, height=627, format="WEBP",
    )
    return pipeline


@pytest.fixture
def enhancers(quote_store, image_pipeline):
    return Enhancers(
        link_transformer=LinkTransformer(internal_domains=["geteducated.com"]),
        internal_pages=[
            {"url": "/online-mba", "anchors": ["online MBA"]},
            {"url": "/financial-aid", "title": "Financial Aid for Online Students"},
        ],
        quote_store=quote_store,
        image_pipeline=image_pipeline,
        site_url="https://www.geteducated.com",
    )


@pytest.fixture
def draft():
    return Draft(title="How to Choose an Online MBA", body=BODY, keywords=("online mba",))


class TestSeo:
    def test_meta_from_first_paragraph_and_slug(self, enhancers, draft):
        result = enhancers.seo(draft, ALL_ON)
        assert result.meta_description == "Many online MBA programs are flexible for working adults."
        assert result.slug == "how-to-choose-an-online-mba"

    def test_long_meta_trimmed_on_word_boundary(self):
        trimmed = _trim_meta("word " * 60)
        assert len(trimmed) <= 160
        assert trimmed.endswith("word...")

    def test_keywords_default_to_title(self, enhancers):
        result = enhancers.seo(Draft(title="Nursing Degrees", body="<p>x</p>"), ALL_ON)
        assert result.keywords == ("Nursing Degrees",)


class TestInternalLinks:
    def test_links_first_occurrence_outside_headings(self, enhancers, draft):
        result = enhancers.internal_links(draft, ALL_ON)
        assert "<h2>Online MBA basics</h2>" in result.body
        assert '<a href="/online-mba">online MBA</a>' in result.body

    def test_anchors_derived_from_page_title(self, enhancers, draft):
        result = enhancers.internal_links(draft, ALL_ON)
        assert '<a href="/financial-aid">Financial aid</a>' in result.body

    def test_respects_max_links(self, enhancers, draft):
        result = enhancers.internal_links(draft, EnhancementConfig(internal_links=True, max_links=1))
        assert result.body.count("<a ") == 1

    def test_no_budget_when_already_linked(self, enhancers):
        body = BODY + "".join(
            f'<p>[ge_internal_link url="/p{i}"]page[/ge_internal_link]</p>' for i in range(5)
        )
        draft = Draft(title="t", body=body)
        assert enhancers.internal_links(draft, ALL_ON) == draft

    def test_idempotent(self, enhancers, draft):
        once = enhancers.internal_links(draft, ALL_ON)
        assert enhancers.internal_links(once, ALL_ON) == once


class TestExternalLinks:
    def test_citations_become_sources_list(self, enhancers, draft):
        cited = Draft(title=draft.title, body=BODY,
                      citations=("NCES Fast Facts: https://nces.ed.gov/fastfacts/",))
        result = enhancers.external_links(cited, ALL_ON)
        soup = BeautifulSoup(result.body, "html.parser")
        link = soup.find("a", href="https://nces.ed.gov/fastfacts/")
        assert link.get_text() == "NCES Fast Facts"
        assert soup.find("h2", string="Sources") is not None

    def test_already_linked_citation_skipped(self, enhancers):
        cited = Draft(title="t", body='<p><a href="https://bls.gov/ooh">BLS</a></p>',
                      citations=("https://bls.gov/ooh",))
        assert enhancers.external_links(cited, ALL_ON) == cited

    def test_idempotent(self, enhancers):
        cited = Draft(title="t", body=BODY, citations=("https://nces.ed.gov/",))
        once = enhancers.external_links(cited, ALL_ON)
        assert enhancers.external_links(once, ALL_ON) == once


class TestQuotes:
    def test_injects_active_quotes_by_relevance(self, enhancers, draft):
        config = EnhancementConfig(quotes=True, quotes_per_article=1)
        result = enhancers.quotes(draft, config)
        blocks = BeautifulSoup(result.body, "html.parser").find_all("blockquote", class_=QUOTE_CLASS)
        assert len(blocks) == 1
        assert "Accreditation is the first filter." in blocks[0].get_text()
        assert blocks[0].find("cite").get_text() == "A. Dean"

    def test_inactive_quotes_never_used(self, enhancers, draft):
        result = enhancers.quotes(draft, EnhancementConfig(quotes=True, quotes_per_article=5))
        assert "Retired quote." not in result.body
        assert result.body.count(QUOTE_CLASS) == 2

    def test_idempotent(self, enhancers, draft):
        once = enhancers.quotes(draft, ALL_ON)
        assert enhancers.quotes(once, ALL_ON) == once

    def test_no_store_is_a_no_op(self, draft):
        assert Enhancers().quotes(draft, ALL_ON) == draft


class TestImages:
    def test_generates_featured_image(self, enhancers, draft, image_pipeline):
        result = enhancers.images(draft, ALL_ON)
        assert result.featured_image_url == "https://media.example.com/featured.webp"
        image_pipeline.generate_featured_image.assert_called_once_with(draft.title)

    def test_existing_image_kept(self, enhancers, image_pipeline):
        draft = Draft(title="t", body=BODY, featured_image_url="https://x.com/a.webp")
        assert enhancers.images(draft, ALL_ON) == draft
        image_pipeline.generate_featured_image.assert_not_called()


class TestStructuredData:
    def test_injects_article_and_faq(self, enhancers):
        body = BODY + "<h2>FAQ</h2><h3>Is it worth it?</h3><p>For most students, yes.</p>"
        result = enhancers.structured_data(Draft(title="Online MBA", body=body), ALL_ON)
        assert schema_types(extract_json_ld(result.body)) == {"Article", "FAQPage"}

    def test_existing_json_ld_left_alone(self, enhancers, draft):
        once = enhancers.structured_data(draft, ALL_ON)
        assert enhancers.structured_data(once, ALL_ON) == once


class TestApply:
    def test_all_steps_report(self, enhancers, draft):
        result, report = enhancers.apply(draft, ALL_ON)
        assert report["failed_enhancements"] == []
        assert set(report["applied"]) >= {"seo", "internal_links", "quotes", "images", "structured_data"}
        assert "external_links" in report["skipped"]
        assert extract_json_ld(result.body)

    def test_failing_step_is_recorded_and_skipped(self, enhancers, draft, image_pipeline):
        image_pipeline.generate_featured_image.side_effect = OSError("disk full")
        result, report = enhancers.apply(draft, ALL_ON)
        assert report["failed_enhancements"] == [{"name": "images", "error": "disk full"}]
        assert result.featured_image_url == ""
        assert "structured_data" in report["applied"]

    def test_disabled_steps_not_run(self, enhancers, draft, image_pipeline):
        _, report = enhancers.apply(draft, EnhancementConfig(seo=True))
        assert report["applied"] == ["seo"]
        image_pipeline.generate_featured_image.assert_not_called()

    def test_reapplying_changes_nothing(self, enhancers, draft):
        once, _ = enhancers.apply(draft, ALL_ON)
        twice, report = enhancers.apply(once, ALL_ON)
        assert twice == once
        assert report["applied"] == []
