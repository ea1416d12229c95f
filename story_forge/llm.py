"""LLM client — HTTP connection to a chat or text-completion backend.

The turn core talks to a language model through a callable matching:

    def is_configured(self) -> bool: ...
    async def __call__(self, stage: str, messages: list[ChatMessage]) -> str: ...

`stage` identifies which part of the core is calling (e.g. "action_proposal",
"narration"). Implementations may use it for logging or routing; the simplest
implementation ignores it.

The returned text is never trusted as structured data — callers always run
it through story_forge.recovery.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports OpenAI-compatible chat completions
                 and KoboldCpp. Selected by provider_format.
    EchoLLM   — returns the last message back unchanged. Useful for
                 smoke-testing the wiring without a running model.

Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    def is_configured(self) -> bool: ...

    async def __call__(self, stage: str, messages: list[ChatMessage]) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "koboldcpp"]

DEFAULT_MODEL = "gpt-3.5-turbo"


class HttpLLM:
    """Async HTTP client for chat/text-completion backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions  {"model", "messages", ...}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "koboldcpp"  — POST /api/v1/generate      {"prompt": ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "https://api.openai.com".
        api_key:         Bearer token. Required by the openai format.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier, used only by the openai format.
        timeout:         HTTP timeout in seconds. Defaults to 120.
        temperature:     Sampling temperature sent with openai requests.
        max_tokens:      Completion budget sent with openai requests.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
        temperature: float = 0.8,
        max_tokens: int = 2000,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens

    def is_configured(self) -> bool:
        if not self._base_url:
            return False
        if self._format == "openai":
            return bool(self._api_key)
        return True

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, messages: list[ChatMessage]) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "koboldcpp":
            url = f"{self._base_url}/api/v1/generate"
            return url, {"prompt": _flatten(messages)}

        url = f"{self._base_url}/v1/chat/completions"
        body: dict = {
            "model": self._model or DEFAULT_MODEL,
            "messages": [m.model_dump() for m in messages],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "koboldcpp":
            results = data.get("results")
            if (
                not isinstance(results, list) or not results
                or not isinstance(results[0], dict)
                or not isinstance(results[0].get("text"), str)
            ):
                raise LLMError("Unexpected response format from KoboldCpp backend")
            return results[0]["text"]

        choices = data.get("choices")
        if (
            not isinstance(choices, list) or not choices
            or not isinstance(choices[0], dict)
            or not isinstance(choices[0].get("message"), dict)
        ):
            raise LLMError("Unexpected response format from OpenAI-compatible backend")
        content = choices[0]["message"].get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise LLMError("OpenAI-compatible backend returned non-text message content")
        return content

    async def __call__(self, stage: str, messages: list[ChatMessage]) -> str:
        if not self.is_configured():
            raise LLMError("LLM backend is not configured")

        url, body = self._build_request(messages)
        logger.debug(
            "llm call stage=%s url=%s messages=%d prompt_len=%d",
            stage, url, len(messages), sum(len(m.content) for m in messages),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise LLMError(f"LLM request failed: {type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise LLMError("LLM backend returned an unexpected JSON body")

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


def _flatten(messages: list[ChatMessage]) -> str:
    """Join chat messages into one prompt for plain text-completion backends."""
    parts = []
    for m in messages:
        if m.role == "system":
            parts.append(m.content)
        elif m.role == "user":
            parts.append(f"### Input\n{m.content}")
        else:
            parts.append(f"### Response\n{m.content}")
    parts.append("### Response\n")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# EchoLLM — returns the last message unchanged; useful for smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the content of the last message as-is. No network calls.

    Lets you verify that the wiring (prompt rendering, recovery fallbacks,
    pending queues, storage writes) works end-to-end without a running model.
    The output won't be valid JSON — the recovery parser falls back to
    treating it as raw text.
    """

    def is_configured(self) -> bool:
        return True

    async def __call__(self, stage: str, messages: list[ChatMessage]) -> str:
        logger.debug("EchoLLM stage=%s messages=%d", stage, len(messages))
        return messages[-1].content if messages else ""


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
