"""Shared fixtures: article bodies of a chosen size and in-memory storage."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from editorial.storage import InMemoryStorage
from editorial.text_metrics import count_words

SENTENCE = "Online students compare tuition costs and program flexibility before enrolling.".split()

# 55 / 152 characters: inside the publish gate's title and meta bands
GOOD_TITLE = "How to Choose an Accredited Online MBA Program in 2026!"
GOOD_META = (
    "Compare accredited online MBA programs by tuition, format and outcomes. Learn which "
    "factors matter most before you apply to a graduate business program."
)
GOOD_IMAGE = "https://www.geteducated.com/wp-content/uploads/editorial/featured-mba.webp"

JSON_LD = {
    "@context": "https://schema.org",
    "@graph": [{"@type": "Article", "headline": GOOD_TITLE}],
}


def filler(n: int) -> str:
    """Exactly n words of plain prose, split into paragraphs of 100 words."""
    tokens = (SENTENCE * (n // len(SENTENCE) + 1))[:n]
    paragraphs = [" ".join(tokens[i:i + 100]) for i in range(0, len(tokens), 100)]
    return "".join(f"<p>{p}</p>" for p in paragraphs)


def make_body(words=1600, internal=2, external=1, affiliate=0, raw_links=0,
              json_ld=True, faq=False, faq_schema=False, headings=True):
    """Article body with exactly `words` visible words and the requested links."""
    parts = []
    if headings:
        parts.append("<h1>Online MBA Guide</h1><h2>Overview</h2>")
    links = []
    links += [f'[ge_internal_link url="/page-{i}"]Programs[/ge_internal_link]' for i in range(internal)]
    links += [
        f'[ge_external_link url="https://nces.ed.gov/{i}" rel="nofollow" target="_blank"]'
        f"Statistics[/ge_external_link]" for i in range(external)
    ]
    links += [
        f'[ge_affiliate_link url="https://shareasale.com/{i}" rel="sponsored nofollow"]'
        f"Offer[/ge_affiliate_link]" for i in range(affiliate)
    ]
    links += [f'<a href="https://example.org/{i}">Source</a>' for i in range(raw_links)]
    if links:
        parts.append(f"<p>{' '.join(links)}</p>")
    if faq:
        parts.append(
            "<h2>Frequently Asked Questions</h2>"
            "<h3>Is an online MBA respected?</h3><p>Yes when the school is accredited.</p>"
        )
    if json_ld:
        data = json.loads(json.dumps(JSON_LD))
        if faq_schema:
            data["@graph"].append({"@type": "FAQPage", "mainEntity": []})
        parts.append(f'<script type="application/ld+json">{json.dumps(data)}</script>')

    fixed = "".join(parts)
    needed = words - count_words(fixed)
    assert needed >= 0, "requested word count is smaller than the fixed markup"
    return filler(needed) + fixed


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def now():
    return datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)  # Wednesday


@pytest.fixture
def make_item(storage, now):
    """Create a content item row; keyword overrides replace the defaults."""

    def _make(**overrides):
        row = {
            "title": GOOD_TITLE,
            "body": make_body(),
            "meta_description": GOOD_META,
            "featured_image_url": GOOD_IMAGE,
            "status": "pending_review",
            "content_type": "new_article",
            "priority": 0,
            "pending_since": (now - timedelta(days=6)).isoformat(),
            "scheduled_publish_at": None,
            "notes": "",
        }
        row.update(overrides)
        return storage.content_items.create(row)

    return _make
