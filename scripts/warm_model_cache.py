#!/usr/bin/env python3
"""Pre-download the embedding model into the cache directory.

Run during image builds so the service starts without network access:

    python scripts/warm_model_cache.py --cache-dir /opt/models
"""

import argparse
import asyncio
import math
import sys
from pathlib import Path
from typing import Optional
import structlog

project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))
sys.path.append(str(project_root / "service-embedding"))

from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging
from app.encoders.embedding_engine import EmbeddingEngine
from app.encoders.model_loader import ModelLoader
from app.errors import FatalInitFailure

logger = structlog.get_logger("warm_model_cache")


async def warm_model_cache(config: EmbeddingConfig, probe_text: Optional[str] = "hello world") -> bool:
    """Load the configured model once and optionally embed a probe text."""
    try:
        handle = await ModelLoader(config).initialize()
    except FatalInitFailure as e:
        logger.error("Model download failed", model_name=config.ml_embedding_model, error=str(e))
        return False

    logger.info(
        "Model cached",
        model_name=handle.name,
        dimension=handle.dimension,
        cache_dir=config.ml_embedding_cache_dir,
        load_seconds=round(handle.load_seconds, 2)
    )

    if probe_text:
        engine = EmbeddingEngine()
        engine.attach(handle)
        vector = engine.embed(probe_text)
        norm = math.sqrt(sum(value * value for value in vector))
        logger.info("Probe embedding generated", dimensions=len(vector), norm=round(norm, 6))

    return True


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Download the embedding model into the cache")
    parser.add_argument("--model", help="Model identifier (defaults to ML_EMBEDDING_MODEL)")
    parser.add_argument("--cache-dir", help="Cache directory (defaults to ML_EMBEDDING_CACHE_DIR)")
    parser.add_argument("--skip-probe", action="store_true", help="Do not run a probe embedding")

    args = parser.parse_args()

    configure_logging("warm_model_cache", "INFO", "console")

    overrides = {}
    if args.model:
        overrides["ml_embedding_model"] = args.model
    if args.cache_dir:
        overrides["ml_embedding_cache_dir"] = args.cache_dir
    config = EmbeddingConfig(**overrides)

    success = asyncio.run(warm_model_cache(config, probe_text=None if args.skip_probe else "hello world"))

    if success:
        print(f"Model {config.ml_embedding_model} cached in {config.ml_embedding_cache_dir}")
        sys.exit(0)
    else:
        print(f"Failed to cache model {config.ml_embedding_model}")
        sys.exit(1)


if __name__ == "__main__":
    main()
