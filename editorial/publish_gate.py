"""Publish Gate: the blocking quality gate run immediately before publication.

Both a reviewer's "Approve" action and the SLA escalation sweep consult this
gate; `passed` (zero errors) is the only thing that decides. Warnings are
reported but never block.

Gates:
  1. Zero raw HTML links (everything must already be a link shortcode)
  2. Balanced shortcode tags, no placeholder text
  3. Internal link shortcodes: 2-5
  4. External link shortcodes: >= 1
  5. JSON-LD structured data present, parseable, with @context/@type
  6. Word count: 1500-3000
  7. Title 50-60 chars, meta description 150-160 chars (hard cap at 160)
  8. FAQ section paired with FAQPage structured data (advisory)
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from editorial.link_transformer import (
    count_closing_shortcodes,
    count_raw_links,
    count_shortcodes,
)
from editorial.models import ContentItem, LinkClass, ValidationResult
from editorial.schema_builder import (
    extract_json_ld,
    find_faq_section,
    has_identifying_fields,
    schema_types,
)
from editorial.structural_validator import LOREM_PATTERN, PLACEHOLDER_MARKERS
from editorial.text_metrics import count_words

log = logging.getLogger(__name__)

MIN_WORDS, MAX_WORDS = 1500, 3000
MIN_INTERNAL_LINKS, MAX_INTERNAL_LINKS = 2, 5
MIN_EXTERNAL_LINKS = 1
TITLE_MIN, TITLE_MAX = 50, 60
META_MIN, META_MAX = 150, 160


class PublishGate:
    """Strict pre-publish validation. Pure function of its inputs."""

    def check(self, body: str, title: str | None, meta_description: str | None,
              featured_image_url: str | None = None) -> ValidationResult:
        """Run every gate. `featured_image_url=None` skips the image gate."""
        result = ValidationResult()
        body = body or ""

        self._check_links(body, result)
        self._check_markup(body, result)
        self._check_structured_data(body, result)
        self._check_word_count(body, result)
        self._check_title(title, result)
        self._check_meta_description(meta_description, result)
        self._check_featured_image(featured_image_url, result)
        self._check_faq(body, result)

        log.info(
            f"Publish gate {'passed' if result.passed else 'failed'}: "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings"
        )
        return result

    def validate(self, content: ContentItem | dict) -> ValidationResult:
        """Run the gate against a content record or a plain dict of fields."""
        if isinstance(content, dict):
            return self.check(
                content.get("body", ""),
                content.get("title"),
                content.get("meta_description"),
                content.get("featured_image_url", ""),
            )
        return self.check(
            content.body, content.title, content.meta_description, content.featured_image_url
        )

    def _check_links(self, body: str, result: ValidationResult):
        counts = count_shortcodes(body)
        raw_links = count_raw_links(body)
        internal = counts[LinkClass.INTERNAL]
        external = counts[LinkClass.EXTERNAL]

        result.set_metric("shortcode_count", sum(counts.values()))
        result.set_metric("internal_link_count", internal)
        result.set_metric("affiliate_link_count", counts[LinkClass.AFFILIATE])
        result.set_metric("external_link_count", external)
        result.set_metric("raw_html_link_count", raw_links)

        if raw_links:
            result.add_error(
                f"{raw_links} raw HTML link(s) detected. All links must use link "
                f"shortcodes; run the body through the link transformer first."
            )
        if internal < MIN_INTERNAL_LINKS:
            result.add_error(
                f"Insufficient internal links ({internal}). Requirement: "
                f"{MIN_INTERNAL_LINKS}-{MAX_INTERNAL_LINKS} internal link shortcodes."
            )
        elif internal > MAX_INTERNAL_LINKS:
            result.add_warning(
                f"Too many internal links ({internal}). Best practice: "
                f"{MIN_INTERNAL_LINKS}-{MAX_INTERNAL_LINKS}."
            )
        if external < MIN_EXTERNAL_LINKS:
            result.add_error(
                "No external authority links found. Requirement: at least one "
                "external link to an authoritative source."
            )

    def _check_markup(self, body: str, result: ValidationResult):
        opening = count_shortcodes(body)
        closing = count_closing_shortcodes(body)
        if opening != closing:
            result.add_error(
                f"Unclosed shortcode tags detected ({sum(opening.values())} open, "
                f"{sum(closing.values())} close)"
            )
        found = [marker for marker in PLACEHOLDER_MARKERS if marker in body]
        if LOREM_PATTERN.search(body):
            found.append("Lorem ipsum")
        result.set_metric("placeholder_count", len(found))
        for marker in found:
            result.add_error(f'Placeholder text found: "{marker}"')

    def _check_structured_data(self, body: str, result: ValidationResult):
        blocks = extract_json_ld(body)
        result.set_metric("has_json_ld", bool(blocks))
        result.set_metric("json_ld_valid", False)

        if not blocks:
            result.add_error(
                "Missing JSON-LD structured data. Include at least one schema "
                "(Article, FAQPage, or BreadcrumbList)."
            )
            return

        broken = [b for b in blocks if not b.parsed]
        if broken:
            result.add_error(f"Invalid JSON-LD syntax: {broken[0].error}")
            return

        result.set_metric("json_ld_valid", True)
        if not all(has_identifying_fields(b.data) for b in blocks):
            result.add_warning("JSON-LD structure incomplete. Missing @context or @type.")

    def _check_word_count(self, body: str, result: ValidationResult):
        word_count = count_words(body)
        result.set_metric("word_count", word_count)
        if word_count < MIN_WORDS:
            result.add_error(
                f"Content too short ({word_count} words). Minimum: {MIN_WORDS} words."
            )
        elif word_count > MAX_WORDS:
            result.add_error(
                f"Content too long ({word_count} words). Maximum: {MAX_WORDS} words; "
                f"consider splitting into multiple articles."
            )

    def _check_title(self, title: str | None, result: ValidationResult):
        title = (title or "").strip()
        result.set_metric("title_length", len(title))
        if not title:
            result.add_error("Missing title. Required for publishing.")
        elif len(title) < TITLE_MIN:
            result.add_warning(f"Title too short ({len(title)} chars). Optimal: 50-60 characters.")
        elif len(title) > TITLE_MAX:
            result.add_warning(
                f"Title too long ({len(title)} chars). Will be truncated in search results."
            )

    def _check_meta_description(self, meta: str | None, result: ValidationResult):
        meta = (meta or "").strip()
        result.set_metric("meta_description_length", len(meta))
        if not meta:
            result.add_error("Missing meta description. Required for search result snippets.")
        elif len(meta) > META_MAX:
            result.add_error(
                f"Meta description too long ({len(meta)} chars). Will be truncated in "
                f"search results; shorten to {META_MIN}-{META_MAX} characters."
            )
        elif len(meta) < META_MIN:
            result.add_warning(
                f"Meta description too short ({len(meta)} chars). Optimal: "
                f"{META_MIN}-{META_MAX} characters."
            )

    def _check_featured_image(self, url: str | None, result: ValidationResult):
        if url is None:
            result.set_metric("has_featured_image", False)
            return
        url = url.strip()
        result.set_metric("has_featured_image", bool(url))
        if not url:
            result.add_error("Featured image is required")
            return
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            result.add_error("Featured image URL is invalid")

    def _check_faq(self, body: str, result: ValidationResult):
        has_faq = find_faq_section(body) is not None
        result.set_metric("has_faq", has_faq)
        if has_faq and "FAQPage" not in schema_types(extract_json_ld(body)):
            result.add_warning(
                "FAQ section found but missing FAQPage schema. Add FAQPage structured data."
            )


def check(body: str, title: str | None, meta_description: str | None,
          featured_image_url: str | None = None) -> ValidationResult:
    return PublishGate().check(body, title, meta_description, featured_image_url)
