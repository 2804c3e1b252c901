from __future__ import annotations

import logging
from typing import Any

from ...config import Settings
from ...llm_client import AsyncOpenAICompatClient, UpstreamError
from ..constants import MAX_RETRIES, RETRYABLE_STATUS_CODES
from ..utils import _sleep_backoff

logger = logging.getLogger(__name__)


def _is_retryable(e: UpstreamError) -> bool:
    # Malformed 200 replies carry no status either; only transport failures retry.
    return e.transport or e.status_code in RETRYABLE_STATUS_CODES


class _LLMCallsMixin:
    _llm: AsyncOpenAICompatClient
    _settings: Settings

    async def _call_model(
        self,
        *,
        model_id: str,
        input: str | list[dict[str, Any]],
        instructions: str,
        tools: list[dict[str, Any]] | None = None,
        max_output_tokens: int | None = None,
        label: str = "OpenAI",
    ) -> str:
        attempts = 0
        while True:
            try:
                return await self._llm.responses(
                    model_id=model_id,
                    input=input,
                    instructions=instructions,
                    tools=tools,
                    max_output_tokens=max_output_tokens,
                    label=label,
                    verbose=self._settings.verbose_openai,
                )
            except UpstreamError as e:
                if _is_retryable(e) and attempts < MAX_RETRIES:
                    logger.warning(
                        "%s call failed (status=%s), retry %d/%d", label, e.status_code, attempts + 1, MAX_RETRIES
                    )
                    await _sleep_backoff(attempts)
                    attempts += 1
                    continue
                raise
