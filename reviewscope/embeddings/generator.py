"""Generate embeddings for review texts and topic labels using OpenAI."""

import logging
from typing import Callable, Optional

from openai import AsyncOpenAI, OpenAIError
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tqdm import tqdm

from reviewscope.config.settings import settings
from reviewscope.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Characters kept per text; the model limit is 8191 tokens
MAX_TEXT_CHARS = 20000


class EmbeddingGenerator:
    """Generate embeddings using OpenAI's embedding models."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.openai_embedding_model,
        batch_size: int = settings.embedding_batch_size,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize the embedding generator.

        Args:
            api_key: OpenAI API key
            model: Embedding model to use
            batch_size: Texts sent per request
            client: Pre-built client (tests pass a fake)
        """
        self._api_key = api_key or settings.openai_api_key
        self._client = client
        self.model = model
        self.batch_size = batch_size
        self._total_tokens = 0

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise EmbeddingError(
                    "REVIEWSCOPE_OPENAI_API_KEY is required for embeddings. Set it in .env or environment."
                )
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(OpenAIError),
    )
    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for one request worth of texts.

        Args:
            texts: Texts to embed

        Returns:
            Embedding vectors in input order
        """
        response = await self.client.embeddings.create(
            model=self.model,
            input=[text[:MAX_TEXT_CHARS] for text in texts],
        )
        if response.usage is not None:
            self._total_tokens += response.usage.total_tokens
        # Items carry their input index; do not rely on response order
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    async def embed_texts(
        self,
        texts: list[str],
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        show_progress: bool = False,
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts, one request per chunk.

        Args:
            texts: List of texts to embed
            batch_size: Texts per request (default from settings)
            on_progress: Called with (done, total) after each chunk
            show_progress: Show progress bar

        Returns:
            List of embedding vectors, one per text, in input order

        Raises:
            EmbeddingError: If the service keeps failing or returns a wrong count
        """
        size = batch_size or self.batch_size
        total = len(texts)
        results: list[list[float]] = []

        progress = tqdm(total=total, desc="Embedding", disable=not show_progress)
        try:
            for start in range(0, total, size):
                batch = texts[start : start + size]
                try:
                    embeddings = await self._embed_batch(batch)
                except RetryError as e:
                    raise EmbeddingError(
                        f"Embedding request failed: {e.last_attempt.exception()}"
                    ) from e
                except OpenAIError as e:
                    raise EmbeddingError(f"Embedding request failed: {e}") from e

                if len(embeddings) != len(batch):
                    raise EmbeddingError(
                        f"Expected {len(batch)} embeddings, got {len(embeddings)}"
                    )
                results.extend(embeddings)

                done = min(start + size, total)
                progress.update(len(batch))
                if on_progress is not None:
                    on_progress(done, total)
        finally:
            progress.close()

        return results

    @property
    def total_tokens(self) -> int:
        """Get total tokens used."""
        return self._total_tokens

    @property
    def estimated_cost(self) -> float:
        """Estimate cost based on tokens used.

        text-embedding-3-small: $0.02 / 1M tokens
        text-embedding-3-large: $0.13 / 1M tokens
        """
        if "large" in self.model:
            return self._total_tokens * 0.13 / 1_000_000
        return self._total_tokens * 0.02 / 1_000_000
