"""Tests for the Structural Validator module."""

import pytest

from conftest import GOOD_IMAGE, GOOD_META, GOOD_TITLE, make_body
from editorial.models import ContentItem
from editorial.structural_validator import StructuralValidator, validate


def _content(**overrides):
    content = {
        "id": "c1",
        "title": GOOD_TITLE,
        "body": make_body(words=1800),
        "meta_description": GOOD_META,
        "featured_image_url": GOOD_IMAGE,
        "content_type": "new_article",
    }
    content.update(overrides)
    return content


class TestHappyPath:
    def test_clean_draft_passes(self):
        result = validate(_content())
        assert result.passed
        assert result.errors == []

    def test_accepts_content_item(self):
        item = ContentItem.from_row(_content())
        assert validate(item).passed

    def test_metrics_reported(self):
        result = validate(_content())
        assert result.metrics["word_count"] == 1800
        assert result.metrics["internal_link_count"] == 2
        assert result.metrics["external_link_count"] == 1
        assert result.metrics["raw_html_link_count"] == 0
        assert result.metrics["h1_count"] == 1
        assert result.metrics["title_length"] == len(GOOD_TITLE)


class TestWordFloor:
    @pytest.mark.parametrize("words,passes", [(1499, False), (1500, True), (1700, True)])
    def test_new_article_floor(self, words, passes):
        result = validate(_content(body=make_body(words=words)))
        assert result.passed is passes

    def test_borderline_count_is_a_warning(self):
        result = validate(_content(body=make_body(words=1550)))
        assert result.passed
        assert any("borderline" in w for w in result.warnings)

    def test_other_content_types_use_lower_floor(self):
        result = validate(_content(body=make_body(words=600), content_type="guide"))
        assert result.passed
        assert result.metrics["min_word_count"] == 500

    def test_configured_floor(self):
        validator = StructuralValidator(new_article_min_words=800)
        assert validator.validate(_content(body=make_body(words=900))).passed


class TestBlockingChecks:
    def test_missing_title(self):
        result = validate(_content(title="  "))
        assert "Title is required" in result.errors

    def test_missing_body(self):
        result = validate(_content(body=""))
        assert "Content body is required" in result.errors

    @pytest.mark.parametrize("marker", ["[INSERT statistic]", "[TODO: cite]", "Lorem ipsum dolor"])
    def test_placeholder_text(self, marker):
        body = make_body(words=1800).replace("<h2>", f"<p>{marker}</p><h2>", 1)
        result = validate(_content(body=body))
        assert not result.passed
        assert any("Placeholder" in e for e in result.errors)

    def test_missing_meta_description(self):
        result = validate(_content(meta_description=""))
        assert "Meta description is required" in result.errors

    def test_meta_description_over_cap(self):
        result = validate(_content(meta_description="x" * 161))
        assert any("too long" in e for e in result.errors)

    def test_missing_featured_image(self):
        assert "Featured image is required" in validate(_content(featured_image_url="")).errors

    def test_invalid_featured_image(self):
        result = validate(_content(featured_image_url="images/hero.webp"))
        assert "Featured image URL is invalid" in result.errors

    def test_raw_html_links_block(self):
        result = validate(_content(body=make_body(words=1800, raw_links=2)))
        assert any("Raw HTML links found (2)" in e for e in result.errors)

    def test_unclosed_shortcode(self):
        body = make_body(words=1800) + '<p>[ge_internal_link url="/x"]dangling</p>'
        result = validate(_content(body=body))
        assert any("Unclosed shortcode" in e for e in result.errors)


class TestAdvisoryChecks:
    def test_short_title_warns(self):
        result = validate(_content(title="Online MBA Costs"))
        assert result.passed
        assert any("Title is short" in w for w in result.warnings)

    def test_short_meta_warns(self):
        result = validate(_content(meta_description="x" * 100))
        assert result.passed
        assert any("Meta description is short" in w for w in result.warnings)

    def test_missing_headings_warn(self):
        result = validate(_content(body=make_body(words=1800, headings=False)))
        assert result.passed
        assert any("No H1" in w for w in result.warnings)
        assert any("No H2" in w for w in result.warnings)

    def test_no_internal_links_warns(self):
        result = validate(_content(body=make_body(words=1800, internal=0)))
        assert result.passed
        assert any("No internal links" in w for w in result.warnings)
