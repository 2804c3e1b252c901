from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, transport: bool = False):
        super().__init__(message)
        self.status_code = status_code
        # No HTTP answer at all: connect errors and timeouts.
        self.transport = transport


@dataclass(frozen=True)
class _OpenAICompatError:
    message: str
    type: str | None = None
    code: str | None = None


def _parse_openai_error(payload: Any) -> _OpenAICompatError | None:
    if not isinstance(payload, dict):
        return None
    err = payload.get("error")
    if not isinstance(err, dict):
        return None
    message = err.get("message")
    if not isinstance(message, str) or not message.strip():
        return None
    return _OpenAICompatError(
        message=message.strip(),
        type=err.get("type") if isinstance(err.get("type"), str) else None,
        code=err.get("code") if isinstance(err.get("code"), str) else None,
    )


def _format_http_error(
    response: httpx.Response, *, prefix: str, fallback_message: str
) -> UpstreamError:
    try:
        payload = response.json()
    except Exception:
        payload = None

    parsed = _parse_openai_error(payload)
    if parsed is not None:
        msg = f"{prefix}: {parsed.message}"
        # The UI matches on provider codes such as rate_limit_exceeded.
        if parsed.code and parsed.code not in parsed.message:
            msg = f"{msg} [{parsed.code}]"
        return UpstreamError(msg, status_code=response.status_code)

    body_preview: str | None = None
    try:
        body_preview = response.text
        if len(body_preview) > 5000:
            body_preview = body_preview[:5000] + "…"
    except Exception:
        body_preview = None

    msg = f"{prefix}: {fallback_message}"
    if body_preview:
        msg = f"{msg}\n\nUpstream response body:\n{body_preview}"
    return UpstreamError(msg, status_code=response.status_code)


def _output_text(data: Any) -> str:
    # Responses API: output_text may be present; otherwise reconstruct from output blocks.
    output_text = data.get("output_text") if isinstance(data, dict) else None
    if isinstance(output_text, str):
        return output_text

    if not isinstance(data, dict) or not isinstance(data.get("output"), list):
        raise UpstreamError("OpenAI /v1/responses returned unexpected shape")

    chunks: list[str] = []
    for item in data["output"]:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if isinstance(block, dict) and block.get("type") == "output_text":
                text = block.get("text")
                if isinstance(text, str):
                    chunks.append(text)
    return "".join(chunks).strip()


class AsyncOpenAICompatClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
        verbose: bool = False,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key.strip()
        self._timeout_s = timeout_s
        self._transport = transport
        self._verbose = verbose
        self._client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AsyncOpenAICompatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers: dict[str, str] = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout_s),
                transport=self._transport,
            )
        return self._client

    async def list_models(self) -> list[str]:
        client = self._get_client()
        try:
            resp = await client.get("/v1/models")
        except Exception as e:
            raise UpstreamError(f"OpenAI request failed: {e}", transport=True) from e

        if resp.status_code >= 400:
            raise _format_http_error(
                resp,
                prefix="OpenAI /v1/models failed",
                fallback_message=f"HTTP {resp.status_code}",
            )

        try:
            payload = resp.json()
        except Exception as e:
            raise UpstreamError(f"OpenAI /v1/models returned invalid JSON: {e}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise UpstreamError("OpenAI /v1/models returned unexpected shape")

        ids: list[str] = []
        for item in data:
            if isinstance(item, dict) and isinstance(item.get("id"), str):
                ids.append(item["id"])
        return ids

    async def responses(
        self,
        *,
        model_id: str,
        input: str | list[dict[str, Any]],
        instructions: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        max_output_tokens: int | None = None,
        label: str = "OpenAI",
        verbose: bool | None = None,
    ) -> str:
        verbose = self._verbose if verbose is None else verbose
        client = self._get_client()
        payload: dict[str, Any] = {"model": model_id, "input": input}
        if instructions:
            payload["instructions"] = instructions
        if tools:
            payload["tools"] = tools
        if max_output_tokens:
            payload["max_output_tokens"] = max_output_tokens

        if verbose:
            logger.debug("%s request: %s", label, json.dumps(payload, ensure_ascii=False))
        else:
            logger.info("%s request: model=%s tools=%d", label, model_id, len(tools or []))

        try:
            resp = await client.post("/v1/responses", json=payload)
        except Exception as e:
            raise UpstreamError(f"OpenAI request failed: {e}", transport=True) from e

        if resp.status_code >= 400:
            raise _format_http_error(
                resp,
                prefix="OpenAI /v1/responses failed",
                fallback_message=f"HTTP {resp.status_code}",
            )

        try:
            data = resp.json()
        except Exception as e:
            raise UpstreamError(f"OpenAI /v1/responses returned invalid JSON: {e}") from e

        text = _output_text(data)
        if verbose:
            logger.debug("%s response: %s", label, text)
        else:
            logger.info("%s response: %d chars", label, len(text))
        return text
