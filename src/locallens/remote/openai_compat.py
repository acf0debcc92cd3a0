"""OpenAI-compatible provider (works with OpenAI, Ollama, LAN servers)."""

from __future__ import annotations

import base64
import time
from typing import Any

import httpx

from locallens.common.ids import IdGenerator
from locallens.common.logging import get_logger
from locallens.models import EncodedImage, Position
from locallens.remote.base import Answer, RemoteService
from locallens.remote.schema import (
    DEFAULT_ACCEPTANCE_THRESHOLD,
    INQUIRY_PROMPT,
    NARRATION_PROMPT,
    recognition_prompt,
)


class OpenAICompatibleService(RemoteService):
    """Remote service speaking the OpenAI REST dialect over httpx."""

    provider_id = "openai"

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        recognition_model: str | None = None,
        narration_model: str | None = None,
        inquiry_model: str | None = None,
        voice: str | None = None,
        timeout_seconds: float = 30.0,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        ids: IdGenerator | None = None,
    ) -> None:
        super().__init__(acceptance_threshold, ids)
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.recognition_model = recognition_model or "gpt-4o-mini"
        self.narration_model = narration_model or "gpt-4o-mini-tts"
        self.inquiry_model = inquiry_model or "gpt-4o-mini-search-preview"
        self.voice = voice or "alloy"
        self.timeout_seconds = timeout_seconds
        self._last_latency_ms = 0
        self._last_error: str | None = None
        self.logger = get_logger("openai_provider")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.endpoint}{path}",
                    headers=self._headers(),
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            self._last_error = str(e)
            raise

        self._last_error = None
        self._last_latency_ms = int((time.time() - start_time) * 1000)
        return response

    async def _request_recognition(
        self,
        image: EncodedImage,
        position: Position | None,
    ) -> str:
        encoded = base64.b64encode(image.data).decode("ascii")
        payload = {
            "model": self.recognition_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": recognition_prompt(position)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"},
                        },
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
        }

        response = await self._post("/chat/completions", payload)
        data = response.json()
        return data["choices"][0]["message"].get("content") or "{}"

    async def _request_speech(self, text: str) -> bytes | None:
        payload = {
            "model": self.narration_model,
            "voice": self.voice,
            "input": text,
            "instructions": NARRATION_PROMPT.format(text="").strip(" :"),
            # Raw 24 kHz s16le mono
            "response_format": "pcm",
        }

        response = await self._post("/audio/speech", payload)
        return response.content or None

    async def _request_answer(self, question: str, place_name: str) -> Answer:
        payload = {
            "model": self.inquiry_model,
            "messages": [
                {
                    "role": "user",
                    "content": INQUIRY_PROMPT.format(landmark=place_name, question=question),
                }
            ],
        }

        response = await self._post("/chat/completions", payload)
        message = response.json()["choices"][0]["message"]

        sources = [
            annotation["url_citation"].get("url")
            for annotation in message.get("annotations") or []
            if annotation.get("type") == "url_citation"
        ]
        return Answer(text=message.get("content") or "", sources=sources)

    def get_status(self) -> dict:
        status = super().get_status()
        status.update(
            {
                "endpoint": self.endpoint,
                "recognition_model": self.recognition_model,
                "latency_ms": self._last_latency_ms,
                "error": self._last_error,
            }
        )
        return status
