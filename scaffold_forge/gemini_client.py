"""Async client for the Gemini ``generateContent`` REST API.

Wraps ``POST /v1beta/models/{model}:generateContent`` with proper timeout
handling and structured responses.  Every call opens its own
``httpx.AsyncClient`` and closes it on every exit path; nothing is pooled or
shared between requests.

Typical usage::

    client = GeminiClient(api_key="...")
    resp = await client.generate([TextPart(text="Write a README")])
    print(resp.text)
"""

from __future__ import annotations

import base64
from typing import Literal, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from scaffold_forge.errors import GenerationError


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    """A plain-text content part."""

    kind: Literal["text"] = "text"
    text: str


class BinaryPart(BaseModel):
    """A binary attachment with a declared MIME type."""

    kind: Literal["binary"] = "binary"
    data: bytes
    mime_type: str = Field(default="application/octet-stream")


ContentPart = Union[TextPart, BinaryPart]


class GenerationResponse(BaseModel):
    """Structured response from a Gemini generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    finish_reason: str = Field(default="", description="Finish reason of the first candidate")
    prompt_tokens: int = Field(default=0)
    output_tokens: int = Field(default=0)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GeminiClient:
    """Async client for the Gemini REST API.

    Raises :class:`GenerationError` on any transport, HTTP-status or
    malformed-response failure.  There is no retry; callers treat a
    generation failure as fatal for the current request.
    """

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://generativelanguage.googleapis.com",
        model: str = "gemini-2.5-flash",
        timeout: int = 300,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"x-goog-api-key": self.api_key},
        )

    @staticmethod
    def _encode_parts(parts: list[ContentPart]) -> list[dict]:
        """Convert content parts to the ``contents[].parts`` wire format.

        Binary parts are base64-encoded into ``inline_data``.
        """
        encoded: list[dict] = []
        for part in parts:
            if isinstance(part, BinaryPart):
                encoded.append(
                    {
                        "inline_data": {
                            "mime_type": part.mime_type,
                            "data": base64.b64encode(part.data).decode("ascii"),
                        }
                    }
                )
            else:
                encoded.append({"text": part.text})
        return encoded

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Join the text parts of the first candidate.

        Gemini may split one answer over several parts; thought parts are
        skipped.
        """
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        content = candidates[0].get("content") or {}
        return "".join(
            p.get("text", "")
            for p in content.get("parts") or []
            if not p.get("thought")
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        parts: list[ContentPart],
        model: str | None = None,
    ) -> GenerationResponse:
        """Generate text from one or more content parts.

        Args:
            parts: Text parts and at most one binary attachment.
            model: Gemini model name; defaults to the client's model.

        Returns:
            A ``GenerationResponse`` with the completion text.

        Raises:
            GenerationError: On transport failure, non-2xx status, an empty or
                malformed completion, or more than one binary attachment.
        """
        model = model or self.model

        if not parts:
            raise GenerationError("At least one content part is required.", model=model)
        if sum(isinstance(p, BinaryPart) for p in parts) > 1:
            raise GenerationError(
                "Only a single binary attachment is supported per request.", model=model
            )

        payload = {
            "contents": [{"role": "user", "parts": self._encode_parts(parts)}],
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"/v1beta/models/{model}:generateContent", json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError as exc:
            raise GenerationError(
                f"Cannot connect to Gemini at {self.base_url}: {exc}", model=model
            ) from exc
        except httpx.TimeoutException as exc:
            raise GenerationError(
                f"Request to Gemini timed out after {self.timeout}s.", model=model
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise GenerationError(
                f"Gemini returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
                model=model,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GenerationError(
                f"Unexpected error during Gemini generate: {exc}", model=model
            ) from exc

        try:
            return self._build_response(data, model)
        except (AttributeError, TypeError, IndexError, ValidationError) as exc:
            raise GenerationError(
                f"Gemini returned a malformed response: {exc}", model=model
            ) from exc

    def _build_response(self, data: dict, model: str) -> GenerationResponse:
        text = self._extract_text(data)
        if not text:
            feedback = (data.get("promptFeedback") or {}).get("blockReason", "")
            reason = f" (blocked: {feedback})" if feedback else ""
            raise GenerationError(f"Gemini returned no text content{reason}.", model=model)

        candidates = data.get("candidates") or [{}]
        usage = data.get("usageMetadata") or {}
        return GenerationResponse(
            text=text,
            model=data.get("modelVersion", model),
            finish_reason=candidates[0].get("finishReason", ""),
            prompt_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
        )
