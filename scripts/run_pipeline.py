#!/usr/bin/env python3
"""Generate one article and queue it for review.

Usage:
    python scripts/run_pipeline.py <keyword|question|trend> "<topic text>" [owner]
"""

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from editorial.config import load_config
from editorial.engine import default_configuration_row, execute_pipeline
from editorial.enhancers import Enhancers
from editorial.image_pipeline import ImagePipeline
from editorial.link_transformer import LinkTransformer
from editorial.llm_client import AnthropicModelClient
from editorial.models import TopicInput
from editorial.review import ReviewService
from editorial.storage import YamlStorage
from editorial.utils.logger import setup_logging
from editorial.utils.run_status import write_last_run

PAYLOAD_KEYS = {"keyword": "keyword", "question": "question_text", "trend": "topic"}


def main():
    setup_logging()

    if len(sys.argv) < 3 or sys.argv[1] not in PAYLOAD_KEYS:
        print(__doc__)
        return 2
    source, text = sys.argv[1], sys.argv[2]
    owner = sys.argv[3] if len(sys.argv) > 3 else os.getenv("EDITORIAL_OWNER", "default")

    try:
        settings = load_config(str(PROJECT_ROOT / "config.yaml"))
        storage = YamlStorage(str(PROJECT_ROOT / "data"))
        if not storage.pipeline_configurations.find({"is_default": True}, limit=1):
            storage.pipeline_configurations.create(default_configuration_row(settings))

        enhancers = Enhancers.from_settings(
            settings,
            quote_store=storage.quotes,
            image_pipeline=ImagePipeline(settings.site.media_base_url),
        )
        result = execute_pipeline(
            TopicInput(source=source, payload={PAYLOAD_KEYS[source]: text}),
            owner,
            storage,
            AnthropicModelClient(),
            enhancers=enhancers,
            link_transformer=LinkTransformer.from_settings(settings),
        )
        content = result.content
        print(f"Draft created: {content.title} ({content.word_count} words, "
              f"${result.metadata.total_cost_usd:.4f})")

        outcome = ReviewService(storage.content_items).submit_for_review(content.id)
        if outcome.transitioned:
            print("   Queued for review")
        else:
            print("   Left in draft:")
            for error in outcome.validation.errors:
                print(f"     - {error}")
        write_last_run(PROJECT_ROOT, "pipeline", success=True, message=f"{content.id}: {content.title}")
    except Exception as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(PROJECT_ROOT, "pipeline", success=False, message=str(e))
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
