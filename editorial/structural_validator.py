"""Structural Validator: fast drafting checks run before an item is queued for review.

Pure function of its input: no storage access, no network. Errors block the
draft → pending_review transition; warnings are shown to the reviewer.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from editorial.link_transformer import (
    count_closing_shortcodes,
    count_raw_links,
    count_shortcodes,
)
from editorial.models import ContentItem, LinkClass, ValidationResult
from editorial.text_metrics import count_words, readability

log = logging.getLogger(__name__)

PLACEHOLDER_MARKERS = ["[INSERT", "[TODO", "[TBD", "PLACEHOLDER"]
LOREM_PATTERN = re.compile(r"lorem ipsum", re.IGNORECASE)

TITLE_MIN, TITLE_MAX = 30, 70
META_MIN, META_MAX = 120, 160
BORDERLINE_WORDS = 200
MAX_AVG_SENTENCE_WORDS = 25
MIN_READING_EASE = 50


def _field(content, name, default=""):
    if isinstance(content, dict):
        return content.get(name) or default
    return getattr(content, name, default) or default


class StructuralValidator:
    """Drafting-stage quality checks with a content-type dependent word floor."""

    def __init__(self, new_article_min_words=1500, default_min_words=500):
        self.new_article_min_words = new_article_min_words
        self.default_min_words = default_min_words

    @classmethod
    def from_settings(cls, settings) -> "StructuralValidator":
        return cls(
            new_article_min_words=settings.validation.new_article_min_words,
            default_min_words=settings.validation.default_min_words,
        )

    def min_words_for(self, content_type: str) -> int:
        if content_type == "new_article":
            return self.new_article_min_words
        return self.default_min_words

    def validate(self, content: ContentItem | dict) -> ValidationResult:
        result = ValidationResult()
        body = _field(content, "body")

        self._check_title(_field(content, "title"), result)
        self._check_body(body, _field(content, "content_type", "new_article"), result)
        self._check_meta_description(_field(content, "meta_description"), result)
        self._check_featured_image(_field(content, "featured_image_url"), result)
        self._check_shortcodes(body, result)
        self._check_readability(body, result)

        log.debug(
            f"Structural validation: {len(result.errors)} errors, {len(result.warnings)} warnings",
            extra={"content_id": _field(content, "id")},
        )
        return result

    def _check_title(self, title: str, result: ValidationResult):
        title = title.strip()
        result.set_metric("title_length", len(title))
        if not title:
            result.add_error("Title is required")
            return
        if len(title) < TITLE_MIN:
            result.add_warning(f"Title is short ({len(title)} chars). Recommended: 50-60 chars.")
        elif len(title) > TITLE_MAX:
            result.add_warning(
                f"Title is long ({len(title)} chars). May be truncated in search results."
            )

    def _check_body(self, body: str, content_type: str, result: ValidationResult):
        min_words = self.min_words_for(content_type)
        result.set_metric("min_word_count", min_words)
        result.set_metric("word_count", 0)
        result.set_metric("placeholder_count", 0)
        result.set_metric("h1_count", 0)
        result.set_metric("h2_count", 0)

        if not body.strip():
            result.add_error("Content body is required")
            return

        word_count = count_words(body)
        result.set_metric("word_count", word_count)
        if word_count < min_words:
            result.add_error(f"Word count too low: {word_count} words (minimum: {min_words})")
        elif word_count < min_words + BORDERLINE_WORDS:
            result.add_warning(
                f"Word count is borderline: {word_count} words. Consider adding more detail."
            )

        found = [marker for marker in PLACEHOLDER_MARKERS if marker in body]
        if LOREM_PATTERN.search(body):
            found.append("Lorem ipsum")
        for marker in found:
            result.add_error(f'Placeholder text found: "{marker}"')
        result.set_metric("placeholder_count", len(found))

        h1_count = len(re.findall(r"<h1[\s>]", body, re.IGNORECASE))
        h1_count += len(re.findall(r"^#\s+", body, re.MULTILINE))
        sub_count = len(re.findall(r"<h[2-6][\s>]", body, re.IGNORECASE))
        sub_count += len(re.findall(r"^#{2,6}\s+", body, re.MULTILINE))
        result.set_metric("h1_count", h1_count)
        result.set_metric("h2_count", sub_count)

        if h1_count == 0:
            result.add_warning("No H1 heading found. Consider adding a main heading.")
        if sub_count == 0:
            result.add_warning("No H2 headings found. Consider breaking content into sections.")

    def _check_meta_description(self, meta: str, result: ValidationResult):
        meta = meta.strip()
        result.set_metric("meta_description_length", len(meta))
        if not meta:
            result.add_error("Meta description is required")
            return
        if len(meta) < META_MIN:
            result.add_warning(
                f"Meta description is short ({len(meta)} chars). Recommended: 140-155 chars."
            )
        elif len(meta) > META_MAX:
            result.add_error(
                f"Meta description is too long ({len(meta)} chars). Maximum: {META_MAX} chars."
            )

    def _check_featured_image(self, url: str, result: ValidationResult):
        url = url.strip()
        result.set_metric("has_featured_image", bool(url))
        result.set_metric("featured_image_valid", False)
        if not url:
            result.add_error("Featured image is required")
            return
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            result.add_error("Featured image URL is invalid")
            return
        result.set_metric("featured_image_valid", True)

    def _check_shortcodes(self, body: str, result: ValidationResult):
        opening = count_shortcodes(body)
        closing = count_closing_shortcodes(body)
        raw_links = count_raw_links(body)

        result.set_metric("shortcode_count", sum(opening.values()))
        result.set_metric("internal_link_count", opening[LinkClass.INTERNAL])
        result.set_metric("affiliate_link_count", opening[LinkClass.AFFILIATE])
        result.set_metric("external_link_count", opening[LinkClass.EXTERNAL])
        result.set_metric("raw_html_link_count", raw_links)

        unbalanced = [c for c in LinkClass.ALL if opening[c] != closing[c]]
        if unbalanced:
            result.add_error(
                f"Unclosed shortcode tags detected ({sum(opening.values())} open, "
                f"{sum(closing.values())} close)"
            )
        if raw_links:
            result.add_error(
                f"Raw HTML links found ({raw_links}). All links must use link shortcodes."
            )
        if opening[LinkClass.INTERNAL] == 0:
            result.add_warning("No internal links found. Consider adding 2-4 internal links.")

    def _check_readability(self, body: str, result: ValidationResult):
        stats = readability(body)
        result.set_metric("avg_words_per_sentence", stats["avg_words_per_sentence"])
        result.set_metric("flesch_reading_ease", stats["flesch_reading_ease"])
        if not stats["sentence_count"] or not stats["word_count"]:
            return
        if stats["avg_words_per_sentence"] > MAX_AVG_SENTENCE_WORDS:
            result.add_warning(
                f"Sentences are long (avg: {stats['avg_words_per_sentence']} words). "
                f"Consider breaking them up for readability."
            )
        if stats["flesch_reading_ease"] < MIN_READING_EASE:
            result.add_warning(
                f"Readability score is low ({stats['flesch_reading_ease']}). "
                f"Content may be difficult to read."
            )


def validate(content: ContentItem | dict) -> ValidationResult:
    """Validate with the default word floors."""
    return StructuralValidator().validate(content)
