from __future__ import annotations

import asyncio
import logging

from openai import AsyncOpenAI, OpenAIError

from session_insights.config import settings
from session_insights.exceptions import SummarizationError

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """You are an assistant helping therapists by summarizing recorded session transcripts.
Write a concise, professional summary that covers:
- Main topics discussed
- Key insights or breakthroughs
- The client's emotional state and progress
- Therapeutic techniques used
- Action items or homework assigned

Keep the summary confidential and focused on therapeutic elements. Output plain prose, no JSON."""


class SummaryService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self._api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        self._client: AsyncOpenAI | None = None
        self._semaphore = asyncio.Semaphore(settings.openai_max_concurrent)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def summarize(self, transcript: str) -> str:
        async with self._semaphore:
            try:
                resp = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": f"Please summarize this session transcript:\n\n{transcript}",
                        },
                    ],
                    temperature=settings.summary_temperature,
                    max_completion_tokens=settings.summary_max_tokens,
                )
            except OpenAIError as exc:
                raise SummarizationError(f"Summary generation failed: {exc}") from exc

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not content:
            raise SummarizationError("Summary generation returned no content")
        logger.info("Generated summary (%d chars) from %d transcript chars", len(content), len(transcript))
        return content


_summary_service: SummaryService | None = None


def get_summary_service() -> SummaryService:
    global _summary_service
    if _summary_service is None:
        _summary_service = SummaryService()
    return _summary_service
