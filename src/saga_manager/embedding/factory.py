"""
Embedding service factory.

Creates the configured embedding collaborator from EmbeddingSettings.
"""

import logging

from ..config import EmbeddingSettings
from .service import EmbeddingService, HttpEmbeddingService, SentenceTransformerEmbeddingService

logger = logging.getLogger(__name__)


def create_embedding_service(config: EmbeddingSettings | None = None) -> EmbeddingService:
    """
    Create the embedding service selected by ``config.provider``.

    Args:
        config: Embedding settings; defaults to the process-wide settings

    Returns:
        HttpEmbeddingService for "http", SentenceTransformerEmbeddingService for "local"
    """
    if config is None:
        from ..config import settings

        config = settings.embedding

    if config.provider == "local":
        logger.info(f"Using local embedding model: {config.model_name} ({config.dimensions} dims)")
        return SentenceTransformerEmbeddingService(
            model_name=config.model_name,
            dimensions=config.dimensions,
            device=config.device,
        )

    api_key = config.api_key.get_secret_value() if config.api_key else None
    logger.info(f"Using HTTP embedding service: {config.endpoint} ({config.model_name})")
    return HttpEmbeddingService(
        endpoint=config.endpoint,
        model_name=config.model_name,
        dimensions=config.dimensions,
        api_key=api_key,
        batch_size=config.batch_size,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )
