"""Settings loader: built-in defaults, deep-merged with config.yaml."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field, fields

import yaml

log = logging.getLogger(__name__)

DEFAULTS = {
    "site": {
        "url": "https://www.geteducated.com",
        "media_base_url": "https://www.geteducated.com/wp-content/uploads/editorial",
        "review_dashboard_url": "https://app.geteducated.com/content-library",
    },
    "links": {
        "internal_domains": ["geteducated.com", "www.geteducated.com"],
        "affiliate_domains": [
            "shareasale.com",
            "cj.com",
            "commission-junction.com",
            "impact.com",
            "impactradius.com",
            "partnerstack.com",
            "awin1.com",
            "tkqlhce.com",
            "jdoqocy.com",
            "anrdoezrs.net",
            "dpbolvw.net",
            "affiliatetechnology.com",
        ],
        "internal_pages": [],
    },
    "sla": {
        "deadline_days": 5,
    },
    "scheduling": {
        "daily_quota": 1,
        "window_start": "09:00",
        "window_end": "17:00",
        "skip_weekends": False,
        "auto_publish": True,
    },
    "validation": {
        "new_article_min_words": 1500,
        "default_min_words": 500,
    },
    "llm": {
        "default_model": "claude-sonnet-4-5-20250929",
        "verifier_model": "claude-haiku-4-5-20251001",
    },
}


@dataclass
class SiteSettings:
    url: str
    media_base_url: str
    review_dashboard_url: str


@dataclass
class LinkSettings:
    internal_domains: list[str]
    affiliate_domains: list[str]
    internal_pages: list[dict] = field(default_factory=list)


@dataclass
class SLASettings:
    deadline_days: int


@dataclass
class SchedulingSettings:
    daily_quota: int
    window_start: str
    window_end: str
    skip_weekends: bool
    auto_publish: bool


@dataclass
class ValidationSettings:
    new_article_min_words: int
    default_min_words: int


@dataclass
class LLMSettings:
    default_model: str
    verifier_model: str


@dataclass
class Settings:
    site: SiteSettings
    links: LinkSettings
    sla: SLASettings
    scheduling: SchedulingSettings
    validation: ValidationSettings
    llm: LLMSettings

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        merged = _deep_merge(copy.deepcopy(DEFAULTS), data or {})
        return cls(
            site=_build(SiteSettings, merged["site"]),
            links=_build(LinkSettings, merged["links"]),
            sla=_build(SLASettings, merged["sla"]),
            scheduling=_build(SchedulingSettings, merged["scheduling"]),
            validation=_build(ValidationSettings, merged["validation"]),
            llm=_build(LLMSettings, merged["llm"]),
        )


def _build(section_cls, values: dict):
    names = {f.name for f in fields(section_cls)}
    unknown = set(values) - names
    if unknown:
        log.warning(f"Ignoring unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**{k: v for k, v in values.items() if k in names})


def _deep_merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: str = "config.yaml") -> Settings:
    """Load settings from a YAML file; missing file or keys fall back to defaults."""
    data = {}
    if os.path.exists(path):
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        log.info(f"Loaded config from {path}")
    else:
        log.warning(f"Config file not found at {path}, using defaults")
    # Unknown top-level sections are ignored
    known = {k: v for k, v in data.items() if k in DEFAULTS}
    return Settings.from_dict(known)
