from __future__ import annotations

import asyncio
import logging

from openai import AsyncOpenAI, OpenAIError

from session_insights.config import settings
from session_insights.exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
    ) -> None:
        self._api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self._client: AsyncOpenAI | None = None
        self._semaphore = asyncio.Semaphore(settings.openai_max_concurrent)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def embed_text(self, text: str) -> list[float]:
        text = text.strip()
        if not text:
            return [0.0] * self.dimensions

        async with self._semaphore:
            try:
                resp = await self.client.embeddings.create(
                    model=self.model,
                    input=text,
                )
            except OpenAIError as exc:
                raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        return self._checked(resp.data[0].embedding)

    async def embed_batch(
        self, texts: list[str], batch_size: int = 100
    ) -> list[list[float]]:
        results: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = [t.strip() for t in texts[i : i + batch_size]]
            batch = [t if t else "empty" for t in batch]

            async with self._semaphore:
                try:
                    resp = await self.client.embeddings.create(
                        model=self.model,
                        input=batch,
                    )
                except OpenAIError as exc:
                    raise EmbeddingError(f"Batch embedding request failed: {exc}") from exc
            if len(resp.data) != len(batch):
                raise EmbeddingError(
                    f"Expected {len(batch)} embeddings, provider returned {len(resp.data)}"
                )
            results.extend(self._checked(d.embedding) for d in resp.data)

        return results

    def _checked(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Expected a {self.dimensions}-dimensional embedding, got {len(vector)}"
            )
        return vector


_embedding_service: EmbeddingService | None = None


def get_embedding_service() -> EmbeddingService:
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
