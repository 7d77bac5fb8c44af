"""Link Transformer: rewrites raw HTML links into classified link shortcodes.

Every hyperlink in a body becomes one of:
  [ge_internal_link url="..."]text[/ge_internal_link]   first-party or relative
  [ge_affiliate_link url="..."]text[/ge_affiliate_link] affiliate network
  [ge_external_link url="..."]text[/ge_external_link]   everything else

Monetization tracking downstream depends on this classification, so any link
that cannot be rewritten is reported rather than dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from editorial.models import SHORTCODE_TAGS, LinkClass, LinkRecord

log = logging.getLogger(__name__)

_TAG_ALTERNATION = "|".join(SHORTCODE_TAGS.values())
SHORTCODE_OPEN_PATTERN = re.compile(rf"\[({_TAG_ALTERNATION})(?=[\s\]])")
SHORTCODE_CLOSE_PATTERN = re.compile(rf"\[/({_TAG_ALTERNATION})\]")

# Attribute name, then an optional double-quoted, single-quoted or bare value
_ATTRIBUTE_NAME = r"""[^\s"'<>/=]+"""
_ATTRIBUTE_VALUE = r"""(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'=<>`]+))?"""
ATTRIBUTE_PATTERN = re.compile(rf"\s+({_ATTRIBUTE_NAME}){_ATTRIBUTE_VALUE}")
_OPEN_TAG = rf"<a((?:\s+{_ATTRIBUTE_NAME}{_ATTRIBUTE_VALUE})*)\s*/?>"
OPEN_TAG_PATTERN = re.compile(_OPEN_TAG, re.IGNORECASE)

# <a ...>text</a> where the text holds no other anchor or link shortcode, so
# nested and unclosed anchors are left in place and reported, never wrapped.
LINK_PATTERN = re.compile(
    rf"{_OPEN_TAG}((?:(?!<a[\s>]|\[(?:{_TAG_ALTERNATION})[\s\]]).)*?)</a\s*>",
    re.IGNORECASE | re.DOTALL,
)
ANY_ANCHOR_PATTERN = re.compile(r"<a[\s>]", re.IGNORECASE)

CLASS_DEFAULTS = {
    LinkClass.INTERNAL: {},
    LinkClass.AFFILIATE: {"rel": "sponsored nofollow"},
    LinkClass.EXTERNAL: {"rel": "nofollow", "target": "_blank"},
}


@dataclass
class TransformResult:
    body: str
    transformation_counts: dict = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)


def count_shortcodes(body: str) -> dict[str, int]:
    """Opening shortcode tags per link class."""
    counts = {link_class: 0 for link_class in LinkClass.ALL}
    tag_to_class = {tag: cls for cls, tag in SHORTCODE_TAGS.items()}
    for match in SHORTCODE_OPEN_PATTERN.finditer(body or ""):
        counts[tag_to_class[match.group(1)]] += 1
    return counts


def count_closing_shortcodes(body: str) -> dict[str, int]:
    counts = {link_class: 0 for link_class in LinkClass.ALL}
    tag_to_class = {tag: cls for cls, tag in SHORTCODE_TAGS.items()}
    for match in SHORTCODE_CLOSE_PATTERN.finditer(body or ""):
        counts[tag_to_class[match.group(1)]] += 1
    return counts


def _has_href(attributes: str) -> bool:
    return any(name.lower() == "href" for name in ATTRIBUTE_PATTERN.findall(attributes))


def count_raw_links(body: str) -> int:
    """Opening <a> tags that carry an href."""
    return sum(1 for match in OPEN_TAG_PATTERN.finditer(body or "") if _has_href(match.group(1)))


def _hostname_matches(hostname: str, domains) -> bool:
    hostname = hostname.lower()
    for domain in domains:
        domain = domain.lower()
        if hostname == domain or hostname.endswith("." + domain):
            return True
    return False


def _quote_attr(value: str) -> str:
    return str(value).replace('"', "&quot;")


class LinkTransformer:
    """Classifies and rewrites hyperlinks. Stateless apart from its domain lists."""

    def __init__(self, internal_domains=(), affiliate_domains=()):
        self.internal_domains = tuple(internal_domains)
        self.affiliate_domains = tuple(affiliate_domains)

    @classmethod
    def from_settings(cls, settings) -> "LinkTransformer":
        return cls(
            internal_domains=settings.links.internal_domains,
            affiliate_domains=settings.links.affiliate_domains,
        )

    def classify(self, url: str) -> str:
        parsed = urlparse(url.strip())
        if not parsed.scheme and not parsed.netloc:
            return LinkClass.INTERNAL
        hostname = parsed.hostname or ""
        if hostname and _hostname_matches(hostname, self.internal_domains):
            return LinkClass.INTERNAL
        if hostname and _hostname_matches(hostname, self.affiliate_domains):
            return LinkClass.AFFILIATE
        return LinkClass.EXTERNAL

    def _record_from_match(self, match: re.Match) -> LinkRecord | None:
        """LinkRecord for a matched anchor, or None when it has no href."""
        raw_attributes, text = match.groups()
        tag = BeautifulSoup(f"<a{raw_attributes}></a>", "html.parser").find("a")
        if tag is None or tag.get("href") is None:
            return None

        url = tag["href"]
        attributes = {}
        for key, value in tag.attrs.items():
            if key == "href":
                continue
            # bs4 splits multi-valued attributes (rel, class) into lists
            attributes[key] = " ".join(value) if isinstance(value, list) else value
        return LinkRecord(
            url=url,
            text=text,
            attributes=attributes,
            link_class=self.classify(url),
        )

    def scan(self, body: str) -> list[LinkRecord]:
        """Return every raw hyperlink in the body, classified."""
        records = (self._record_from_match(m) for m in LINK_PATTERN.finditer(body or ""))
        return [record for record in records if record is not None]

    def to_shortcode(self, record: LinkRecord) -> str:
        attributes = dict(record.attributes)
        for key, value in CLASS_DEFAULTS[record.link_class].items():
            attributes.setdefault(key, value)

        tag = SHORTCODE_TAGS[record.link_class]
        params = [f'url="{_quote_attr(record.url)}"']
        params.extend(f'{key}="{_quote_attr(value)}"' for key, value in attributes.items())
        return f"[{tag} {' '.join(params)}]{record.text}[/{tag}]"

    def transform(self, body: str) -> TransformResult:
        """Rewrite all raw links in `body` into shortcodes.

        Running this on its own output is a no-op: the link pattern never
        matches the shortcode notation.
        """
        counts = {"total": 0, **{link_class: 0 for link_class in LinkClass.ALL}}
        if not body:
            return TransformResult(body=body or "", transformation_counts=counts)

        def replace(match: re.Match) -> str:
            record = self._record_from_match(match)
            if record is None:
                return match.group(0)
            counts["total"] += 1
            counts[record.link_class] += 1
            return self.to_shortcode(record)

        transformed = LINK_PATTERN.sub(replace, body)

        issues = []
        remaining = len(ANY_ANCHOR_PATTERN.findall(transformed))
        if remaining:
            issues.append(
                f"{remaining} malformed link(s) could not be transformed (check HTML syntax)"
            )

        log.info(
            f"Transformed {counts['total']} links "
            f"({counts['internal']} internal, {counts['affiliate']} affiliate, "
            f"{counts['external']} external)"
        )
        if issues:
            log.warning(f"Link transform issues: {issues}")
        return TransformResult(body=transformed, transformation_counts=counts, issues=issues)
