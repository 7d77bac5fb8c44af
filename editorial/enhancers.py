"""Enhancement sub-steps applied to a generated draft.

Each sub-step takes a Draft and returns a (possibly) modified copy. Every
sub-step checks for its own earlier output first, so applying it twice, or in
any order relative to the others, gives the same article.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from urllib.parse import urlparse

from bs4 import BeautifulSoup, NavigableString
from slugify import slugify

from editorial.link_transformer import LinkTransformer, count_shortcodes
from editorial.models import Draft, EnhancementConfig, LinkClass
from editorial.schema_builder import SchemaBuilder, extract_faq_items, extract_json_ld
from editorial.text_metrics import count_words

log = logging.getLogger(__name__)

META_MAX = 160
SKIP_PARENTS = ("a", "h1", "h2", "h3", "h4", "script", "style", "blockquote")
SHORTCODE_URL = re.compile(r'\[ge_internal_link\s+url="([^"]*)"')
URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")
QUOTE_CLASS = "ge-quote"
STOP_WORDS = {"the", "a", "an", "is", "are", "was", "were", "how", "why", "what",
              "your", "you", "to", "of", "for", "and", "in", "on"}


def _extract_link_keywords(title: str) -> list[str]:
    """Linkable 2-3 word phrases from a page title."""
    words = [w for w in title.split() if w.lower() not in STOP_WORDS]
    phrases = []
    for n in (3, 2):
        for i in range(len(words) - n + 1):
            phrase = " ".join(words[i:i+n])
            if len(phrase) > 8:
                phrases.append(phrase)
    return phrases[:3]


def _trim_meta(meta: str) -> str:
    meta = " ".join(meta.split())
    if len(meta) <= META_MAX:
        return meta
    cut = meta[:META_MAX - 3]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:.") + "..."


class Enhancers:
    """The toggleable enhancement sub-steps and the collaborators they need."""

    STEPS = ("seo", "internal_links", "external_links", "quotes", "images", "structured_data")

    def __init__(self, link_transformer: LinkTransformer | None = None, internal_pages=(),
                 quote_store=None, image_pipeline=None, schema_builder: SchemaBuilder | None = None,
                 site_url: str = ""):
        self.link_transformer = link_transformer or LinkTransformer()
        self.internal_pages = list(internal_pages)
        self.quote_store = quote_store
        self.image_pipeline = image_pipeline
        self.site_url = site_url.rstrip("/")
        self.schema_builder = schema_builder or SchemaBuilder(site_url=self.site_url)

    @classmethod
    def from_settings(cls, settings, quote_store=None, image_pipeline=None) -> "Enhancers":
        return cls(
            link_transformer=LinkTransformer.from_settings(settings),
            internal_pages=settings.links.internal_pages,
            quote_store=quote_store,
            image_pipeline=image_pipeline,
            schema_builder=SchemaBuilder(site_url=settings.site.url, publisher_name="GetEducated"),
            site_url=settings.site.url,
        )

    def enabled_steps(self, config: EnhancementConfig) -> list[str]:
        return [name for name in self.STEPS if getattr(config, name)]

    def apply(self, draft: Draft, config: EnhancementConfig) -> tuple[Draft, dict]:
        """Run every enabled sub-step. A failing sub-step leaves its input untouched."""
        report = {"applied": [], "skipped": [], "failed_enhancements": []}
        for name in self.enabled_steps(config):
            step = getattr(self, name)
            try:
                enhanced = step(draft, config)
            except Exception as e:
                log.warning(f"Enhancement '{name}' failed: {e}")
                report["failed_enhancements"].append({"name": name, "error": str(e)})
                continue
            report["applied" if enhanced != draft else "skipped"].append(name)
            draft = enhanced
        return draft, report

    # -- SEO -----------------------------------------------------------

    def seo(self, draft: Draft, config: EnhancementConfig) -> Draft:
        meta = draft.meta_description
        if not meta:
            soup = BeautifulSoup(draft.body, "html.parser")
            first_paragraph = soup.find("p")
            meta = first_paragraph.get_text(" ", strip=True) if first_paragraph else ""
        keywords = draft.keywords or ((draft.title,) if draft.title else ())
        return replace(
            draft,
            meta_description=_trim_meta(meta),
            keywords=tuple(keywords),
            slug=draft.slug or slugify(draft.title, max_length=60),
        )

    # -- Internal links ------------------------------------------------

    def _linked_internal_urls(self, body: str) -> set[str]:
        urls = {
            record.url for record in self.link_transformer.scan(body)
            if record.link_class == LinkClass.INTERNAL
        }
        urls.update(SHORTCODE_URL.findall(body))
        return urls

    def _internal_link_count(self, body: str) -> int:
        raw = sum(
            1 for record in self.link_transformer.scan(body)
            if record.link_class == LinkClass.INTERNAL
        )
        return raw + count_shortcodes(body)[LinkClass.INTERNAL]

    def internal_links(self, draft: Draft, config: EnhancementConfig) -> Draft:
        """Link phrases in the body to configured first-party pages, up to `max_links` in total."""
        existing = self._internal_link_count(draft.body)
        budget = config.max_links - existing
        if budget <= 0 or not self.internal_pages:
            return draft

        linked = self._linked_internal_urls(draft.body)
        soup = BeautifulSoup(draft.body, "html.parser")
        added = 0

        for page in self.internal_pages:
            if added >= budget:
                break
            url = page.get("url", "")
            if not url or url in linked:
                continue
            anchors = page.get("anchors") or _extract_link_keywords(page.get("title", ""))
            if self._link_first_occurrence(soup, anchors, url):
                linked.add(url)
                added += 1

        if not added:
            return draft
        total = existing + added
        if total < config.min_links:
            log.warning(f"Only {total} internal links placed (minimum {config.min_links})")
        log.info(f"Inserted {added} internal links")
        return replace(draft, body=str(soup))

    def _link_first_occurrence(self, soup: BeautifulSoup, anchors, url: str) -> bool:
        for anchor in anchors:
            pattern = re.compile(rf"\b{re.escape(anchor)}\b", re.IGNORECASE)
            for text_node in soup.find_all(string=pattern):
                if any(parent.name in SKIP_PARENTS for parent in text_node.parents):
                    continue
                # Text already carrying link shortcodes is left alone
                if "[ge_" in text_node:
                    continue
                match = pattern.search(text_node)
                text = str(text_node)
                link = soup.new_tag("a", href=url)
                link.string = match.group(0)
                text_node.replace_with(
                    NavigableString(text[:match.start()]), link, NavigableString(text[match.end():])
                )
                return True
        return False

    # -- External citations --------------------------------------------

    def external_links(self, draft: Draft, config: EnhancementConfig) -> Draft:
        """Append verification citations not already linked as a "Sources" list."""
        missing = []
        for citation in draft.citations:
            match = URL_PATTERN.search(str(citation))
            if not match:
                continue
            url = match.group(0).rstrip(".,;")
            if url in draft.body or any(url == m[0] for m in missing):
                continue
            label = str(citation).replace(match.group(0), "").strip(" -:|()") or urlparse(url).netloc
            missing.append((url, label))
        if not missing:
            return draft

        soup = BeautifulSoup(draft.body, "html.parser")
        heading = soup.find(lambda tag: tag.name in ("h2", "h3") and tag.get_text(strip=True) == "Sources")
        sources_list = heading.find_next_sibling("ul") if heading else None
        if sources_list is None:
            heading = soup.new_tag("h2")
            heading.string = "Sources"
            sources_list = soup.new_tag("ul")
            soup.append(heading)
            soup.append(sources_list)

        for url, label in missing:
            item = soup.new_tag("li")
            link = soup.new_tag("a", href=url)
            link.string = label
            item.append(link)
            sources_list.append(item)
        log.info(f"Added {len(missing)} external citations")
        return replace(draft, body=str(soup))

    # -- Quotes ---------------------------------------------------------

    def _candidate_quotes(self, draft: Draft, visible_text: str) -> list[dict]:
        if self.quote_store is None:
            return []
        keywords = {k.lower() for k in draft.keywords}
        rows = [
            row for row in self.quote_store.find({"is_active": True})
            if row.get("text") and row["text"] not in visible_text
        ]

        def relevance(row):
            overlap = keywords & {k.lower() for k in row.get("keywords", [])}
            return (-len(overlap), str(row.get("id", "")))

        return sorted(rows, key=relevance)

    def quotes(self, draft: Draft, config: EnhancementConfig) -> Draft:
        """Place curated quotes as blockquotes between paragraphs, `quotes_per_article` at most."""
        soup = BeautifulSoup(draft.body, "html.parser")
        existing = len(soup.find_all("blockquote", class_=QUOTE_CLASS))
        needed = config.quotes_per_article - existing
        if needed <= 0:
            return draft

        chosen = self._candidate_quotes(draft, soup.get_text(" "))[:needed]
        if not chosen:
            return draft

        paragraphs = [p for p in soup.find_all("p") if p.find_parent("blockquote") is None]
        step = max(len(paragraphs) // (len(chosen) + 1), 1)
        for i, row in enumerate(chosen):
            block = soup.new_tag("blockquote", attrs={"class": QUOTE_CLASS})
            text = soup.new_tag("p")
            text.string = row["text"]
            block.append(text)
            attribution = ", ".join(part for part in (row.get("author"), row.get("source")) if part)
            if attribution:
                cite = soup.new_tag("cite")
                cite.string = attribution
                block.append(cite)

            position = min(step * (i + 1), len(paragraphs)) - 1
            if paragraphs and position >= 0:
                paragraphs[position].insert_after(block)
            else:
                soup.append(block)
        log.info(f"Injected {len(chosen)} quotes")
        return replace(draft, body=str(soup))

    # -- Images ---------------------------------------------------------

    def images(self, draft: Draft, config: EnhancementConfig) -> Draft:
        if draft.featured_image_url:
            return draft
        if self.image_pipeline is None:
            log.info("No image pipeline configured, featured image not generated")
            return draft
        image = self.image_pipeline.generate_featured_image(draft.title)
        return replace(draft, featured_image_url=image.url)

    # -- Structured data ------------------------------------------------

    def structured_data(self, draft: Draft, config: EnhancementConfig) -> Draft:
        """Inject Article (and FAQPage when the body has an FAQ) JSON-LD."""
        if extract_json_ld(draft.body):
            return draft
        slug = draft.slug or slugify(draft.title, max_length=60)
        now = datetime.now(timezone.utc).isoformat()
        graph = self.schema_builder.build_full_graph({
            "post_title": draft.title,
            "meta_description": draft.meta_description,
            "publish_date_iso": now,
            "modified_date_iso": now,
            "word_count": count_words(draft.body),
            "keywords": ", ".join(draft.keywords),
            "post_url": f"{self.site_url}/{slug}/",
            "featured_image_url": draft.featured_image_url,
            "faq_items": extract_faq_items(draft.body),
        })
        check = self.schema_builder.validate_schema(graph)
        if check.errors:
            log.warning(f"Structured data issues: {check.errors}")
        return replace(draft, body=self.schema_builder.inject_into_html(draft.body, graph))
