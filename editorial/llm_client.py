"""Model invocation: a thin wrapper over the Anthropic Messages API with cost tracking."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass, field

import anthropic
from dotenv import load_dotenv

load_dotenv(override=True)

log = logging.getLogger(__name__)

# USD per million tokens: (input, output)
MODEL_PRICES = {
    "claude-opus-4-1-20250805": (15.00, 75.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "claude-haiku-4-5-20251001": (1.00, 5.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
}
DEFAULT_PRICE = MODEL_PRICES["claude-sonnet-4-5-20250929"]

JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class ModelInvocationError(Exception):
    """The model provider failed or returned nothing usable."""


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ModelResponse:
    content: str
    usage: Usage = field(default_factory=Usage)
    model: str = ""


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    input_price, output_price = MODEL_PRICES.get(model, DEFAULT_PRICE)
    return round((input_tokens * input_price + output_tokens * output_price) / 1_000_000, 6)


def parse_json_content(text: str, default=None):
    """Parse a JSON object out of model output, tolerating ```json fences and prose.

    Returns `default` when nothing parseable is found.
    """
    if not text:
        return default
    candidates = [text.strip()]
    fenced = JSON_FENCE.search(text)
    if fenced:
        candidates.insert(0, fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    log.warning("Model output was not valid JSON, using default")
    return default


class AnthropicModelClient:
    """Invokes Claude models. The client is created lazily from ANTHROPIC_API_KEY."""

    def __init__(self, api_key: str | None = None, max_retries: int = 2, timeout: float = 120.0):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self.max_retries = max_retries
        self.timeout = timeout
        self._client = None

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.api_key:
                raise ModelInvocationError("ANTHROPIC_API_KEY is not set")
            self._client = anthropic.Anthropic(
                api_key=self.api_key, max_retries=self.max_retries, timeout=self.timeout,
            )
        return self._client

    def invoke(self, prompt: str, system_prompt: str | None = None,
               model: str = "claude-sonnet-4-5-20250929", temperature: float = 0.7,
               max_tokens: int = 4000, response_schema: dict | None = None) -> ModelResponse:
        """Send one user prompt and return the text reply with usage and cost."""
        system = system_prompt or ""
        if response_schema:
            system += (
                "\n\nRespond with a single JSON object and nothing else. "
                f"It must match this JSON schema:\n{json.dumps(response_schema)}"
            )

        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system.strip():
            kwargs["system"] = system.strip()

        start = time.time()
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise ModelInvocationError(f"{model} invocation failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise ModelInvocationError(f"{model} returned no text content")

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        usage = Usage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost=estimate_cost(model, input_tokens, output_tokens),
        )
        log.info(
            f"{model}: {usage.total_tokens} tokens, ${usage.estimated_cost:.4f}",
            extra={"duration_ms": int((time.time() - start) * 1000)},
        )
        return ModelResponse(content=text, usage=usage, model=model)
