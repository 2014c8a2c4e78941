"""Generative model boundary: a text prompt plus at most one inline attachment in, text out."""
import base64
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from errors import ModelError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageAttachment:
    data: bytes
    mime_type: str

    def __repr__(self) -> str:
        return f"ImageAttachment(mime_type={self.mime_type!r}, size={len(self.data)})"


class GenerativeModel(Protocol):
    async def generate(self, prompt: str, attachment: Optional[ImageAttachment] = None) -> str: ...


class GeminiModel:
    """Calls the Gemini `generateContent` REST endpoint with one reusable async client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_request(self, prompt: str, attachment: Optional[ImageAttachment] = None) -> dict:
        parts = [{"text": prompt}]
        if attachment is not None:
            parts.append({
                "inline_data": {
                    "mime_type": attachment.mime_type,
                    "data": base64.b64encode(attachment.data).decode("ascii"),
                }
            })
        return {"contents": [{"role": "user", "parts": parts}]}

    async def generate(self, prompt: str, attachment: Optional[ImageAttachment] = None) -> str:
        response = await self._client.post(
            self._url,
            json=self.build_request(prompt, attachment),
            headers={"x-goog-api-key": self._api_key},
        )
        if response.status_code != 200:
            raise ModelError(f"HTTP {response.status_code} from {self.model}: {response.text[:200]}")
        return self.extract_text(response.json())

    @staticmethod
    def extract_text(body: dict) -> str:
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ModelError(f"prompt blocked: {feedback['blockReason']}")
        candidates = body.get("candidates") or []
        if not candidates:
            raise ModelError("response has no candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            raise ModelError(f"empty response (finishReason={candidates[0].get('finishReason')})")
        return text

    async def aclose(self) -> None:
        await self._client.aclose()
