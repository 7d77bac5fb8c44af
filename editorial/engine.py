"""Generation Engine: turns a topic into a draft article through an ordered list of stages.

  1. Topic selection    bookkeeping, cannot fail
  2. Draft generation   primary model call; fatal if no generator is configured
  3. Verification       optional fact check; failure is recorded, run continues
  4. Enhancement        optional toggled sub-steps (see editorial.enhancers)
  5. Post-processing    link shortcodes, readability, style variation

The stage list is built once per run from the PipelineConfiguration. Disabled
stages are simply not in the list.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field, replace

import markdown as md_lib
from slugify import slugify

from editorial.config import Settings
from editorial.enhancers import Enhancers
from editorial.link_transformer import LinkTransformer
from editorial.llm_client import parse_json_content
from editorial.models import (
    ContentItem,
    ContentStatus,
    Draft,
    ExecutionMetadata,
    PipelineConfiguration,
    StageRecord,
    TopicInput,
    utcnow,
)
from editorial.text_metrics import count_words, readability

log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior editor for GetEducated, writing for prospective online "
    "students and working professionals comparing degree programs. Write "
    "accurate, specific, well-structured articles in Markdown. Never invent "
    "statistics, and never leave placeholder text."
)

FORMAT_INSTRUCTIONS = """Requirements:
- 1500-2500 words
- Clear H2 and H3 headings
- Include specific examples and data
- Write in an engaging, informative style
- Target audience: Higher education students and professionals

Format your response with:
# [Title]

[Lead paragraph]

## [Section 1 Heading]
[Content]

## [Section 2 Heading]
[Content]

...and so on."""

VERIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "facts_correct": {"type": "boolean"},
        "corrections": {"type": "array", "items": {"type": "string"}},
        "citations": {"type": "array", "items": {"type": "string"}},
        "confidence": {"type": "number"},
    },
}

TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
META_PATTERN = re.compile(r"^(?!#)(.{50,155}[.!?])", re.MULTILINE)
TRANSITION_OPENER = re.compile(
    r"([.!?]\s+)(Additionally|Furthermore|Moreover|In addition|Also|However),\s+(\w)"
)


class PipelineConfigurationError(Exception):
    """The pipeline configuration cannot produce an article (e.g. no generator)."""


@dataclass(frozen=True)
class CostAccumulator:
    """Running cost/token totals. Immutable: `add` returns a new accumulator."""

    total_cost_usd: float = 0.0
    total_tokens: int = 0
    models_used: tuple = ()

    def add(self, response, provider: str, model: str) -> "CostAccumulator":
        usage = response.usage
        return CostAccumulator(
            total_cost_usd=self.total_cost_usd + usage.estimated_cost,
            total_tokens=self.total_tokens + usage.total_tokens,
            models_used=self.models_used + (
                {"provider": provider, "model": model, "tokens": usage.total_tokens},
            ),
        )


@dataclass(frozen=True)
class RunState:
    topic: TopicInput
    draft: Draft | None = None


@dataclass
class StageOutput:
    state: RunState
    accumulator: CostAccumulator
    data: dict = field(default_factory=dict)
    status: str = "completed"
    error: str = ""
    model: str = ""


@dataclass
class GenerationResult:
    content: ContentItem
    metadata: ExecutionMetadata
    pipeline_config_id: str


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TopicSelectionStage:
    inputs: dict
    name: str = "topic_selection"

    def run(self, state: RunState, acc: CostAccumulator, model_client) -> StageOutput:
        source_config = self.inputs.get(state.topic.source)
        enabled = bool(source_config and source_config.enabled)
        weight = source_config.weight if enabled else None
        if not enabled:
            log.info(f"Topic source '{state.topic.source}' is not enabled in this pipeline")
        return StageOutput(state, acc, data={
            "source": state.topic.source,
            "weight": weight,
            "topic": state.topic.text,
        })


@dataclass(frozen=True)
class DraftGenerationStage:
    generator: object  # GeneratorConfig, or None when the configuration has no primary
    name: str = "draft_generation"
    fatal: bool = True

    def run(self, state: RunState, acc: CostAccumulator, model_client) -> StageOutput:
        if self.generator is None:
            raise PipelineConfigurationError("No primary generator enabled in pipeline configuration")

        prompt = build_generation_prompt(state.topic)
        log.info(f"Generating draft with {self.generator.model}: {state.topic.text}")
        response = model_client.invoke(
            prompt,
            system_prompt=SYSTEM_PROMPT,
            model=self.generator.model,
            temperature=self.generator.temperature,
            max_tokens=self.generator.max_tokens,
        )
        acc = acc.add(response, self.generator.provider, self.generator.model)
        draft = parse_draft(response.content, state.topic)
        return StageOutput(
            replace(state, draft=draft), acc,
            data={
                "provider": self.generator.provider,
                "title": draft.title,
                "word_count": count_words(draft.body),
            },
            model=self.generator.model,
        )


DEFAULT_VERIFICATION = {
    "facts_correct": None,
    "corrections": [],
    "citations": [],
    "confidence": 0.0,
}


def _normalize_verification(raw) -> dict:
    if not isinstance(raw, dict):
        return dict(DEFAULT_VERIFICATION, corrections=[], citations=[])
    confidence = raw.get("confidence", raw.get("confidence_score", 0.0))
    try:
        confidence = float(confidence)
    except (TypeError, ValueError):
        confidence = 0.0
    return {
        "facts_correct": raw.get("facts_correct"),
        "corrections": [str(c) for c in raw.get("corrections") or []],
        "citations": [str(c) for c in raw.get("citations") or []],
        "confidence": confidence,
    }


@dataclass(frozen=True)
class VerificationStage:
    config: object  # VerificationConfig
    name: str = "verification"
    fatal: bool = False

    def run(self, state: RunState, acc: CostAccumulator, model_client) -> StageOutput:
        prompt = (
            "Review the following article for factual accuracy and provide "
            f"corrections if needed:\n\n{state.draft.markdown or state.draft.body}\n\n"
            "Return your response as JSON with this structure:\n"
            '{"facts_correct": true/false, "corrections": ["..."], '
            '"citations": ["authoritative source URLs"], "confidence": 0-1}'
        )
        response = model_client.invoke(
            prompt,
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            response_schema=VERIFICATION_SCHEMA,
        )
        acc = acc.add(response, "anthropic", self.config.model)
        judgment = _normalize_verification(parse_json_content(response.content))
        draft = replace(state.draft, verification=judgment, citations=tuple(judgment["citations"]))
        if judgment["facts_correct"] is False and judgment["corrections"]:
            log.warning(f"Verification flagged {len(judgment['corrections'])} corrections")
        return StageOutput(
            replace(state, draft=draft), acc,
            data={
                "facts_correct": judgment["facts_correct"],
                "corrections": len(judgment["corrections"]),
                "citations": len(judgment["citations"]),
                "confidence": judgment["confidence"],
            },
            model=self.config.model,
        )


@dataclass(frozen=True)
class EnhancementStage:
    config: object  # EnhancementConfig
    enhancers: Enhancers
    name: str = "enhancement"
    fatal: bool = False

    def run(self, state: RunState, acc: CostAccumulator, model_client) -> StageOutput:
        draft, report = self.enhancers.apply(state.draft, self.config)
        return StageOutput(replace(state, draft=draft), acc, data=report)


@dataclass(frozen=True)
class PostProcessingStage:
    config: object  # PostProcessingConfig
    link_transformer: LinkTransformer
    name: str = "post_processing"
    fatal: bool = False

    def run(self, state: RunState, acc: CostAccumulator, model_client) -> StageOutput:
        draft = state.draft
        data = {}
        if self.config.shortcode_transform:
            result = self.link_transformer.transform(draft.body)
            draft = replace(draft, body=result.body)
            data["transformation_counts"] = result.transformation_counts
            data["link_issues"] = result.issues
        if self.config.style_variation:
            body, varied = vary_sentence_openers(draft.body)
            draft = replace(draft, body=body)
            data["style_variations"] = varied
        if self.config.readability_check:
            data["readability"] = readability(draft.body)
        return StageOutput(replace(state, draft=draft), acc, data=data)


def build_stages(config: PipelineConfiguration, enhancers: Enhancers | None = None,
                 link_transformer: LinkTransformer | None = None) -> list:
    """The ordered stage list for one run. Disabled optional stages are left out."""
    stages = [
        TopicSelectionStage(inputs=config.inputs),
        DraftGenerationStage(generator=config.primary_generator()),
    ]
    if config.verification.enabled:
        stages.append(VerificationStage(config=config.verification))
    if config.enhancements.any_enabled:
        stages.append(EnhancementStage(config=config.enhancements, enhancers=enhancers or Enhancers()))
    post = config.post_processing
    if post.shortcode_transform or post.readability_check or post.style_variation:
        stages.append(PostProcessingStage(
            config=post, link_transformer=link_transformer or _default_link_transformer(),
        ))
    return stages


def _default_link_transformer() -> LinkTransformer:
    return LinkTransformer.from_settings(Settings.from_dict({}))


# ----------------------------------------------------------------------
# Prompt building and draft parsing
# ----------------------------------------------------------------------

def build_generation_prompt(topic: TopicInput) -> str:
    if topic.source == "question":
        return (
            "Write a comprehensive, SEO-optimized article answering this question:\n\n"
            f'"{topic.text}"\n\n- Answer the question thoroughly\n{FORMAT_INSTRUCTIONS}'
        )
    if topic.source == "keyword":
        secondary = topic.payload.get("secondary_keywords") or []
        extra = f"\n- Also cover: {', '.join(secondary)}" if secondary else ""
        return (
            "Write a comprehensive, SEO-optimized article targeting the keyword: "
            f'"{topic.text}"\n\n- Focus on the keyword naturally (no stuffing){extra}\n'
            f"{FORMAT_INSTRUCTIONS}"
        )
    context = topic.payload.get("context", "")
    return (
        f'Write a timely, SEO-optimized article about this trending topic: "{topic.text}"\n'
        + (f"\nWhy it is trending: {context}\n" if context else "")
        + f"\n- Explain what changed and what it means for students\n{FORMAT_INSTRUCTIONS}"
    )


def extract_title(raw: str) -> str:
    match = TITLE_PATTERN.search(raw)
    return match.group(1).strip() if match else "Untitled Article"


def extract_meta_description(raw: str) -> str:
    """First sentence-length span of non-heading text."""
    match = META_PATTERN.search(raw)
    if match:
        return match.group(1).strip()
    text = " ".join(
        line.strip() for line in raw.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    )
    return text[:152].strip() + "..."


def parse_draft(raw: str, topic: TopicInput) -> Draft:
    """Parse raw model Markdown into a Draft with an HTML body."""
    title = extract_title(raw)
    return Draft(
        title=title,
        body=md_lib.markdown(raw, extensions=["tables", "fenced_code"]),
        markdown=raw,
        meta_description=extract_meta_description(raw),
        keywords=tuple(topic.keywords),
        slug=slugify(title, max_length=60),
    )


def vary_sentence_openers(body: str) -> tuple[str, int]:
    """Drop repeats of a transition opener after its first use in the article.

    "... Moreover, x. ... Moreover, y." becomes "... Moreover, x. ... Y."
    """
    seen = set()
    varied = 0

    def replace_opener(match: re.Match) -> str:
        nonlocal varied
        opener = match.group(2)
        if opener not in seen:
            seen.add(opener)
            return match.group(0)
        varied += 1
        return f"{match.group(1)}{match.group(3).upper()}"

    return TRANSITION_OPENER.sub(replace_opener, body), varied


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------

class GenerationEngine:
    """Runs the configured stages for one topic. Holds no per-run state of its own."""

    def __init__(self, configuration: PipelineConfiguration, model_client,
                 enhancers: Enhancers | None = None, link_transformer: LinkTransformer | None = None):
        self.configuration = configuration
        self.model_client = model_client
        self.stages = build_stages(configuration, enhancers, link_transformer)

    def execute(self, topic_input: TopicInput) -> GenerationResult:
        run_start = time.time()
        state = RunState(topic=topic_input)
        acc = CostAccumulator()
        steps = []

        log.info(
            f"Pipeline '{self.configuration.name}' starting: "
            f"{[stage.name for stage in self.stages]}"
        )
        for stage in self.stages:
            before = acc
            stage_start = time.time()
            try:
                output = stage.run(state, acc, self.model_client)
            except Exception as e:
                duration_ms = int((time.time() - stage_start) * 1000)
                if isinstance(e, PipelineConfigurationError) or getattr(stage, "fatal", False):
                    log.error(f"Pipeline aborted in {stage.name}: {e}", extra={"stage": stage.name})
                    steps.append(StageRecord(
                        stage="error", status="failed", duration_ms=duration_ms,
                        error=str(e), data={"failed_stage": stage.name},
                    ))
                    # Callers inspect what ran before the abort via the exception
                    e.metadata = self._metadata(steps, acc, run_start)
                    raise
                log.warning(f"Stage {stage.name} failed, continuing: {e}", extra={"stage": stage.name})
                steps.append(StageRecord(
                    stage=stage.name, status="failed", duration_ms=duration_ms, error=str(e),
                ))
                continue

            state, acc = output.state, output.accumulator
            duration_ms = int((time.time() - stage_start) * 1000)
            steps.append(StageRecord(
                stage=stage.name,
                status=output.status,
                duration_ms=duration_ms,
                cost_usd=acc.total_cost_usd - before.total_cost_usd,
                tokens=acc.total_tokens - before.total_tokens,
                model=output.model,
                error=output.error,
                data=output.data,
            ))
            log.info(
                f"Stage {stage.name} {output.status}",
                extra={"stage": stage.name, "duration_ms": duration_ms},
            )

        metadata = self._metadata(steps, acc, run_start)
        content = self._to_content_item(state, metadata)
        log.info(
            f"Pipeline complete: '{content.title}' ({content.word_count} words, "
            f"${metadata.total_cost_usd:.4f})",
            extra={"content_id": content.id, "duration_ms": metadata.total_time_ms},
        )
        return GenerationResult(
            content=content, metadata=metadata, pipeline_config_id=self.configuration.id,
        )

    @staticmethod
    def _metadata(steps: list, acc: CostAccumulator, run_start: float) -> ExecutionMetadata:
        return ExecutionMetadata(
            steps=list(steps),
            total_cost_usd=acc.total_cost_usd,
            total_tokens=acc.total_tokens,
            total_time_ms=int((time.time() - run_start) * 1000),
            models_used=list(acc.models_used),
        )

    def _to_content_item(self, state: RunState, metadata: ExecutionMetadata) -> ContentItem:
        draft = state.draft
        verification = draft.verification or {}
        notes = ""
        if verification.get("facts_correct") is False and verification.get("corrections"):
            notes = "Verification corrections:\n" + "\n".join(
                f"- {c}" for c in verification["corrections"]
            )
        return ContentItem(
            id=uuid.uuid4().hex,
            title=draft.title,
            body=draft.body,
            meta_description=draft.meta_description,
            featured_image_url=draft.featured_image_url,
            word_count=count_words(draft.body),
            status=ContentStatus.DRAFT,
            slug=draft.slug,
            keywords=list(draft.keywords),
            created_at=utcnow().isoformat(),
            notes=notes,
            pipeline_config_id=self.configuration.id,
            generation_metadata=metadata.to_dict(),
        )


# ----------------------------------------------------------------------
# Configuration lookup and metrics
# ----------------------------------------------------------------------

def default_configuration_row(settings: Settings) -> dict:
    """Row for the shared default pipeline: every stage on, models from settings."""
    return {
        "name": "default",
        "owner": "",
        "is_active": False,
        "is_default": True,
        "inputs": {
            "keyword": {"enabled": True, "weight": 0.5},
            "question": {"enabled": True, "weight": 0.3},
            "trend": {"enabled": True, "weight": 0.2},
        },
        "generators": [{"model": settings.llm.default_model, "role": "primary"}],
        "verification": {"enabled": True, "model": settings.llm.verifier_model},
        "enhancements": {
            "seo": True, "internal_links": True, "external_links": True,
            "quotes": True, "images": True, "structured_data": True,
        },
        "post_processing": {"shortcode_transform": True, "readability_check": True,
                            "style_variation": True},
        "performance_metrics": {},
    }


def get_active_pipeline_config(configs, user_id: str) -> PipelineConfiguration:
    """The user's active configuration, else the default one."""
    rows = configs.find({"owner": user_id, "is_active": True}, order_by="-created_at", limit=1)
    if not rows:
        rows = configs.find({"is_default": True}, limit=1)
    if not rows:
        raise PipelineConfigurationError("No pipeline configuration found")
    return PipelineConfiguration.from_row(rows[0])


def update_pipeline_metrics(configs, config_id: str, metadata: ExecutionMetadata):
    """Fold one run into the configuration's rolling averages. Never raises."""
    try:
        row = configs.get(config_id)
        metrics = row.get("performance_metrics") or {}
        total = (metrics.get("total_articles") or 0) + 1
        avg_time = ((metrics.get("avg_generation_time_ms") or 0) * (total - 1)
                    + metadata.total_time_ms) / total
        avg_cost = ((metrics.get("avg_cost_usd") or 0) * (total - 1)
                    + metadata.total_cost_usd) / total
        configs.update(config_id, {
            "performance_metrics": {
                **metrics,
                "total_articles": total,
                "avg_generation_time_ms": avg_time,
                "avg_cost_usd": avg_cost,
            },
            "last_used_at": utcnow().isoformat(),
        })
        log.info(f"Pipeline metrics updated for {config_id}: {total} articles, avg ${avg_cost:.4f}")
    except Exception as e:
        log.error(f"Failed to update pipeline metrics for {config_id}: {e}")


def execute_pipeline(topic_input: TopicInput, user_id: str, storage, model_client,
                     enhancers: Enhancers | None = None,
                     link_transformer: LinkTransformer | None = None) -> GenerationResult:
    """Look up the user's configuration, run it, record metrics and store the draft."""
    configuration = get_active_pipeline_config(storage.pipeline_configurations, user_id)
    engine = GenerationEngine(configuration, model_client, enhancers, link_transformer)
    result = engine.execute(topic_input)
    update_pipeline_metrics(storage.pipeline_configurations, configuration.id, result.metadata)

    row = result.content.to_row()
    row["owner"] = user_id
    stored = storage.content_items.create(row)
    result.content = ContentItem.from_row(stored)
    return result
