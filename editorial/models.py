"""Data model shared by the generation, validation and governance components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone


class ContentStatus:
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    DELETED = "deleted"

    ALL = (DRAFT, PENDING_REVIEW, APPROVED, SCHEDULED, PUBLISHED, DELETED)


class LinkClass:
    INTERNAL = "internal"
    AFFILIATE = "affiliate"
    EXTERNAL = "external"

    ALL = (INTERNAL, AFFILIATE, EXTERNAL)


# Shortcode tag per link class
SHORTCODE_TAGS = {
    LinkClass.INTERNAL: "ge_internal_link",
    LinkClass.AFFILIATE: "ge_affiliate_link",
    LinkClass.EXTERNAL: "ge_external_link",
}

TOPIC_SOURCES = ("keyword", "question", "trend")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 string (or pass a datetime through), always tz-aware."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class ContentItem:
    """One article moving through draft → review → approval → publication."""

    id: str
    title: str = ""
    body: str = ""
    meta_description: str = ""
    featured_image_url: str = ""
    word_count: int = 0
    status: str = ContentStatus.DRAFT
    content_type: str = "new_article"
    slug: str = ""
    keywords: list[str] = field(default_factory=list)
    priority: int = 0
    owner: str = ""
    created_at: str | None = None
    pending_since: str | None = None
    scheduled_publish_at: str | None = None
    published_at: str | None = None
    notes: str = ""
    validation_errors: list[str] = field(default_factory=list)
    validation_warnings: list[str] = field(default_factory=list)
    auto_approved: bool = False
    auto_approved_at: str | None = None
    auto_approved_reason: str = ""
    pipeline_config_id: str | None = None
    generation_metadata: dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict) -> "ContentItem":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in names})

    def to_row(self) -> dict:
        return asdict(self)


@dataclass
class ValidationResult:
    """Outcome of a validator run. Errors block; warnings are informational."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.errors

    def add_error(self, message: str):
        self.errors.append(message)

    def add_warning(self, message: str):
        self.warnings.append(message)

    def set_metric(self, key: str, value):
        self.metrics[key] = value

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "metrics": dict(self.metrics),
        }


@dataclass
class LinkRecord:
    url: str
    text: str
    attributes: dict[str, str]
    link_class: str


@dataclass
class TopicInput:
    """What to write about: a keyword, a reader question, or a trend signal."""

    source: str
    payload: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.source not in TOPIC_SOURCES:
            raise ValueError(f"Unknown topic source: {self.source}")

    @property
    def text(self) -> str:
        if self.source == "keyword":
            return self.payload.get("keyword", "")
        if self.source == "question":
            return self.payload.get("question_text", "")
        return self.payload.get("topic", "") or self.payload.get("keyword", "")

    @property
    def keywords(self) -> list[str]:
        keywords = list(self.payload.get("secondary_keywords", []))
        primary = self.payload.get("keyword")
        return [primary] + keywords if primary else keywords


@dataclass(frozen=True)
class Draft:
    """Article as it moves between generation stages. Stages return modified copies."""

    title: str
    body: str
    markdown: str = ""
    meta_description: str = ""
    keywords: tuple = ()
    slug: str = ""
    featured_image_url: str = ""
    verification: dict | None = None
    citations: tuple = ()


# ----------------------------------------------------------------------
# Pipeline configuration (immutable snapshot for one engine run)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class InputSourceConfig:
    enabled: bool = True
    weight: float = 1.0


@dataclass(frozen=True)
class GeneratorConfig:
    model: str
    provider: str = "anthropic"
    role: str = "primary"
    enabled: bool = True
    temperature: float = 0.7
    max_tokens: int = 4000


@dataclass(frozen=True)
class VerificationConfig:
    enabled: bool = False
    model: str = "claude-haiku-4-5-20251001"
    temperature: float = 0.3
    max_tokens: int = 2000


@dataclass(frozen=True)
class EnhancementConfig:
    seo: bool = False
    internal_links: bool = False
    min_links: int = 2
    max_links: int = 5
    external_links: bool = False
    quotes: bool = False
    quotes_per_article: int = 2
    images: bool = False
    structured_data: bool = False

    @property
    def any_enabled(self) -> bool:
        return any((self.seo, self.internal_links, self.external_links,
                    self.quotes, self.images, self.structured_data))


@dataclass(frozen=True)
class PostProcessingConfig:
    shortcode_transform: bool = True
    readability_check: bool = False
    style_variation: bool = False


@dataclass(frozen=True)
class PipelineConfiguration:
    id: str
    name: str = "default"
    owner: str = ""
    is_active: bool = False
    is_default: bool = False
    inputs: dict = field(default_factory=dict)
    generators: tuple = ()
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    enhancements: EnhancementConfig = field(default_factory=EnhancementConfig)
    post_processing: PostProcessingConfig = field(default_factory=PostProcessingConfig)
    performance_metrics: dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict) -> "PipelineConfiguration":
        """Build a configuration snapshot from a stored row."""
        inputs = {
            source: InputSourceConfig(**values)
            for source, values in (row.get("inputs") or {}).items()
        }
        generators = tuple(GeneratorConfig(**g) for g in row.get("generators") or [])
        return cls(
            id=row["id"],
            name=row.get("name", "default"),
            owner=row.get("owner", ""),
            is_active=row.get("is_active", False),
            is_default=row.get("is_default", False),
            inputs=inputs,
            generators=generators,
            verification=VerificationConfig(**(row.get("verification") or {})),
            enhancements=EnhancementConfig(**(row.get("enhancements") or {})),
            post_processing=PostProcessingConfig(**(row.get("post_processing") or {})),
            performance_metrics=dict(row.get("performance_metrics") or {}),
        )

    def primary_generator(self) -> GeneratorConfig | None:
        for generator in self.generators:
            if generator.enabled and generator.role == "primary":
                return generator
        return None


# ----------------------------------------------------------------------
# Execution metadata
# ----------------------------------------------------------------------

@dataclass
class StageRecord:
    stage: str
    status: str  # "completed" | "failed" | "skipped"
    duration_ms: int = 0
    cost_usd: float = 0.0
    tokens: int = 0
    model: str = ""
    error: str = ""
    data: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())


@dataclass
class ExecutionMetadata:
    steps: list[StageRecord] = field(default_factory=list)
    total_cost_usd: float = 0.0
    total_tokens: int = 0
    total_time_ms: int = 0
    models_used: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
