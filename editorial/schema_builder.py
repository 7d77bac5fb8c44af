"""Schema Builder: generates, extracts and validates JSON-LD structured data."""

import json
import logging
import os
import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader

log = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
FAQ_HEADING = re.compile(r"^\s*(faq|faqs|frequently asked questions)\b", re.IGNORECASE)


@dataclass
class SchemaBlock:
    """One <script type="application/ld+json"> block found in a body."""

    raw: str
    data: dict | list | None = None
    error: str = ""

    @property
    def parsed(self) -> bool:
        return self.data is not None


@dataclass
class SchemaCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def extract_json_ld(html: str) -> list[SchemaBlock]:
    """Find and parse every JSON-LD block in an HTML body."""
    blocks = []
    if not html:
        return blocks
    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        try:
            blocks.append(SchemaBlock(raw=raw, data=json.loads(raw)))
        except json.JSONDecodeError as e:
            blocks.append(SchemaBlock(raw=raw, error=str(e)))
    return blocks


def schema_items(data) -> list[dict]:
    """Flatten a JSON-LD document (object, list, or @graph) into its typed items."""
    if isinstance(data, list):
        items = []
        for entry in data:
            items.extend(schema_items(entry))
        return items
    if not isinstance(data, dict):
        return []
    if "@graph" in data:
        return [item for item in data["@graph"] if isinstance(item, dict)]
    return [data]


def schema_types(blocks: list[SchemaBlock]) -> set[str]:
    types = set()
    for block in blocks:
        if not block.parsed:
            continue
        for item in schema_items(block.data):
            value = item.get("@type")
            if isinstance(value, list):
                types.update(value)
            elif value:
                types.add(value)
    return types


def has_identifying_fields(data) -> bool:
    """True when a block declares @context and every item declares @type."""
    documents = data if isinstance(data, list) else [data]
    for doc in documents:
        if not isinstance(doc, dict) or not doc.get("@context"):
            return False
        if "@graph" in doc:
            graph = doc["@graph"]
            if not graph or not all(isinstance(i, dict) and i.get("@type") for i in graph):
                return False
        elif not doc.get("@type"):
            return False
    return True


def find_faq_section(html: str) -> BeautifulSoup | None:
    soup = BeautifulSoup(html or "", "html.parser")
    for heading in soup.find_all(re.compile(r"^h[1-4]$")):
        if FAQ_HEADING.match(heading.get_text()):
            return heading
    return None


def extract_faq_items(html: str) -> list[dict]:
    """Question/answer pairs from an FAQ section: sub-headings followed by paragraphs."""
    heading = find_faq_section(html)
    if heading is None:
        return []

    items = []
    current = None
    for sibling in heading.find_next_siblings():
        if sibling.name == heading.name:
            break
        if sibling.name and re.match(r"^h[1-6]$", sibling.name):
            current = {"question": sibling.get_text(strip=True), "answer": ""}
            items.append(current)
        elif sibling.name == "p" and current is not None and not current["answer"]:
            current["answer"] = sibling.get_text(" ", strip=True)
    return [item for item in items if item["question"] and item["answer"]]


class SchemaBuilder:
    """Generates JSON-LD structured data for articles from Jinja2 templates."""

    def __init__(self, templates_dir=TEMPLATES_DIR, site_url="", publisher_name=""):
        self.templates_dir = templates_dir
        self.site_url = site_url
        self.publisher_name = publisher_name
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=False,
        )

    def build_article_schema(self, post_data: dict) -> dict:
        """Build Article JSON-LD from post data."""
        template = self.env.get_template("article-template.json")
        defaults = {
            "post_title": "",
            "meta_description": "",
            "publish_date_iso": "",
            "modified_date_iso": "",
            "word_count": 0,
            "keywords": "",
            "post_url": "",
            "featured_image_url": "",
            "site_url": self.site_url,
            "publisher_name": self.publisher_name,
        }
        rendered = template.render(**{**defaults, **post_data})
        return json.loads(rendered)

    def build_faq_schema(self, faq_items: list[dict], post_url: str = "") -> dict:
        """Build FAQPage JSON-LD from FAQ items."""
        template = self.env.get_template("faqpage-template.json")
        rendered = template.render(faq_items=faq_items, post_url=post_url)
        return json.loads(rendered)

    def build_full_graph(self, post_data: dict) -> dict:
        """Build an @graph with the Article and, when FAQ items exist, an FAQPage."""
        graph = [self.build_article_schema(post_data)]

        faq_items = post_data.get("faq_items") or []
        if faq_items:
            graph.append(self.build_faq_schema(faq_items, post_data.get("post_url", "")))

        for item in graph:
            item.pop("@context", None)
        return {"@context": "https://schema.org", "@graph": graph}

    def validate_schema(self, json_ld: dict) -> SchemaCheck:
        """Field-level checks for the item types this builder produces."""
        errors = []
        warnings = []
        for item in schema_items(json_ld):
            schema_type = item.get("@type", "")
            if schema_type == "Article":
                for field_name in ("headline", "datePublished", "author", "description"):
                    if not item.get(field_name):
                        errors.append(f"Article missing required field: {field_name}")
                if not item.get("image", {}).get("url"):
                    warnings.append("Article missing featured image URL")
            elif schema_type == "FAQPage":
                entities = item.get("mainEntity", [])
                if not entities:
                    errors.append("FAQPage has no questions")
                for i, question in enumerate(entities):
                    if not question.get("name"):
                        errors.append(f"FAQ question {i + 1} missing 'name'")
                    if not question.get("acceptedAnswer", {}).get("text"):
                        errors.append(f"FAQ question {i + 1} missing answer text")
        return SchemaCheck(valid=not errors, errors=errors, warnings=warnings)

    def inject_into_html(self, html_content: str, json_ld: dict) -> str:
        """Append a JSON-LD script block to the body (before </body> if present)."""
        script_tag = (
            '<script type="application/ld+json">'
            + json.dumps(json_ld, separators=(",", ":")).replace("</", "<\\/")
            + "</script>"
        )
        if "</body>" in html_content:
            return html_content.replace("</body>", f"{script_tag}\n</body>")
        return html_content + "\n" + script_tag
