"""Embedding vectors and the collaborators that produce them."""

from .factory import create_embedding_service
from .service import EmbeddingService, HttpEmbeddingService, SentenceTransformerEmbeddingService
from .vector import EmbeddingVector

__all__ = [
    "EmbeddingService",
    "EmbeddingVector",
    "HttpEmbeddingService",
    "SentenceTransformerEmbeddingService",
    "create_embedding_service",
]
