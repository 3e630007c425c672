"""Embedding generation with batching support."""
import logging
from typing import Protocol

import openai
from openai import OpenAI

from ragvault.core.errors import TransientIOError

logger = logging.getLogger(__name__)

_TRANSIENT_OPENAI_ERRORS = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


class Embedder(Protocol):
    """Produces one fixed-dimension vector per input text.

    ``batch_size`` is the largest list a single ``embed`` call sends upstream;
    callers that retry should retry per batch of that size.
    """

    dimension: int
    batch_size: int

    def embed(self, texts: list[str]) -> list[list[float]]:
        ...


class OpenAIEmbedder:
    """Embedder backed by the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-large",
        dimension: int = 3072,
        batch_size: int = 100,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.dimension = dimension
        self.batch_size = batch_size
        # SDK-level retries are disabled; the ingestion pipeline owns retry policy
        self._client = client or OpenAI(api_key=api_key, max_retries=0)

    def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts with batching.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors (one per input text, same order)

        Raises:
            TransientIOError: On connection, timeout, rate-limit or server errors
        """
        if not texts:
            return []

        all_embeddings: list[list[float]] = []

        # Process in batches to respect API rate limits
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]

            logger.info(f"Generating embeddings for batch {i // self.batch_size + 1} ({len(batch)} texts)")

            kwargs = {"input": batch, "model": self.model}
            if self.model.startswith("text-embedding-3"):
                kwargs["dimensions"] = self.dimension

            try:
                response = self._client.embeddings.create(**kwargs)
            except _TRANSIENT_OPENAI_ERRORS as e:
                logger.warning(f"Transient embedding failure: {e}")
                raise TransientIOError(f"Embedding model unavailable: {e}") from e

            ordered = sorted(response.data, key=lambda item: item.index)
            all_embeddings.extend(item.embedding for item in ordered)

        if len(all_embeddings) != len(texts):
            raise TransientIOError(
                f"Embedding model returned {len(all_embeddings)} vectors for {len(texts)} texts"
            )

        logger.info(f"Generated {len(all_embeddings)} embeddings total")
        return all_embeddings
