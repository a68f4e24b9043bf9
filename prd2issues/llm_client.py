"""Async client for the Anthropic Messages API.

Wraps ``POST /v1/messages`` with proper timeout handling and a structured
response. Transport failures are reported through ``LLMResponse.success``
rather than raised, and an output-size stop (``stop_reason == "max_tokens"``)
is surfaced separately as ``truncated`` so callers can tell it apart from a
malformed answer.

Typical usage::

    client = AnthropicClient(api_key="sk-...")
    resp = await client.generate("Decompose this PRD ...")
    if resp.truncated:
        ...
    print(resp.text)
"""

from __future__ import annotations

import time

import httpx
from pydantic import BaseModel, Field

_API_VERSION = "2023-06-01"


class LLMResponse(BaseModel):
    """Structured response from a generation call."""

    text: str = Field(default="", description="Concatenated text content blocks")
    model: str = Field(default="", description="Model that produced the response")
    stop_reason: str | None = Field(default=None, description="Why generation stopped")
    input_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)
    duration_ms: float = Field(default=0.0, description="Wall-clock request time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")

    @property
    def truncated(self) -> bool:
        """``True`` when generation stopped because the output budget ran out."""
        return self.stop_reason == "max_tokens"


class AnthropicClient:
    """Async client for the Anthropic Messages API.

    A fresh ``httpx.AsyncClient`` is opened per request; decomposition makes a
    handful of long calls, so connection reuse buys nothing.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 8192,
        temperature: float = 0.3,
        base_url: str = "https://api.anthropic.com",
        timeout: int = 300,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Join every ``text`` content block of a Messages API response."""
        blocks = data.get("content") or []
        return "".join(
            block.get("text", "") for block in blocks if block.get("type") == "text"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, system: str = "") -> LLMResponse:
        """Generate a completion for a single user prompt.

        Args:
            prompt: The user prompt.
            system: Optional system prompt.

        Returns:
            An ``LLMResponse`` with the generated text or an error.
        """
        payload: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        started = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.post("/v1/messages", json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
                usage = data.get("usage") or {}
                return LLMResponse(
                    text=self._extract_text(data),
                    model=data.get("model", self.model),
                    stop_reason=data.get("stop_reason"),
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                    duration_ms=(time.monotonic() - started) * 1000.0,
                    success=True,
                )
        except httpx.ConnectError:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Cannot connect to the Anthropic API at {self.base_url}.",
            )
        except httpx.TimeoutException:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Request to the Anthropic API timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Claude API returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
            )
        except Exception as exc:  # noqa: BLE001
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Unexpected error during Claude API call: {exc}",
            )
