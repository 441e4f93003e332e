#!/usr/bin/env python3
"""Script to embed review texts and topic labels."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging, settings
from reviewscope.config.taxonomy import EmbeddingsConfig, load_taxonomy
from reviewscope.data.database import get_engine, get_session_factory
from reviewscope.embeddings.generator import EmbeddingGenerator
from reviewscope.exceptions import ReviewScopeError
from reviewscope.pipeline.orchestrator import SyncPipeline


async def embed_all(pipeline: SyncPipeline, org_ids: list[str], force: bool):
    outcomes = []
    for org_id in org_ids:
        print(f"Embedding {org_id}...")
        outcome = await pipeline.embed_organization(org_id, force=force)
        print(f"  {outcome.reviews_embedded} reviews, {outcome.topics_embedded} topics")
        outcomes.append(outcome)
    return outcomes


def main():
    parser = argparse.ArgumentParser(description="Generate review and topic embeddings")
    parser.add_argument(
        "--orgs",
        nargs="+",
        help="Organization IDs to embed (default: all tracked)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-embed reviews and topics that already have an embedding",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Texts per embedding request (default: from config file)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Embedding model (default: from config file)",
    )

    args = parser.parse_args()
    configure_logging()

    # The embeddings section of the config file overrides the environment
    embeddings = EmbeddingsConfig()
    if settings.taxonomy_config_path.exists():
        try:
            embeddings = load_taxonomy().embeddings
        except ReviewScopeError as e:
            print(f"Invalid config: {e}")
            return 1
    model = args.model or embeddings.model
    batch_size = args.batch_size or embeddings.batch_size

    engine = get_engine()
    generator = EmbeddingGenerator(model=model, batch_size=batch_size)
    run_settings = settings.model_copy(update={"embedding_batch_size": batch_size})
    pipeline = SyncPipeline(get_session_factory(engine), None, generator, run_settings)

    try:
        org_ids = pipeline.resolve_org_ids(args.orgs)
        asyncio.run(embed_all(pipeline, org_ids, args.force))
    except ReviewScopeError as e:
        print(f"Error: {e}")
        return 1

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Organizations: {len(org_ids)}")
    print(f"Tokens used: {generator.total_tokens:,}")
    print(f"Estimated cost: ${generator.estimated_cost:.4f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
