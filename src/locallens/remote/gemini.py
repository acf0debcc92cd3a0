"""Gemini provider using the google-genai SDK."""

from __future__ import annotations

import time

from google import genai
from google.genai import types

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

RECOGNITION_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "place": types.Schema(
            type=types.Type.OBJECT,
            nullable=True,
            properties={
                "name": types.Schema(type=types.Type.STRING),
                "category": types.Schema(type=types.Type.STRING),
                "description": types.Schema(type=types.Type.STRING),
                "yearBuilt": types.Schema(type=types.Type.STRING),
                "rating": types.Schema(type=types.Type.NUMBER),
                "confidence": types.Schema(type=types.Type.NUMBER),
            },
            required=["name", "category", "description", "rating", "confidence"],
        ),
        "stories": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "type": types.Schema(type=types.Type.STRING),
                    "title": types.Schema(type=types.Type.STRING),
                    "content": types.Schema(type=types.Type.STRING),
                    "icon": types.Schema(type=types.Type.STRING),
                },
                required=["type", "title", "content", "icon"],
            ),
        ),
        "reasoning": types.Schema(type=types.Type.STRING),
    },
)


class GeminiService(RemoteService):
    """Recognition, narration and grounded Q&A backed by Gemini models."""

    provider_id = "gemini"

    def __init__(
        self,
        api_key: str,
        recognition_model: str | None = None,
        narration_model: str | None = None,
        inquiry_model: str | None = None,
        voice: str | None = None,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        ids: IdGenerator | None = None,
    ) -> None:
        super().__init__(acceptance_threshold, ids)
        self.recognition_model = recognition_model or "gemini-3-flash-preview"
        self.narration_model = narration_model or "gemini-2.5-flash-preview-tts"
        self.inquiry_model = inquiry_model or "gemini-3-flash-preview"
        self.voice = voice or "Kore"
        self._client = genai.Client(api_key=api_key)
        self._last_latency_ms = 0
        self.logger = get_logger("gemini_provider")

    async def _request_recognition(
        self,
        image: EncodedImage,
        position: Position | None,
    ) -> str:
        start_time = time.time()
        response = await self._client.aio.models.generate_content(
            model=self.recognition_model,
            contents=[
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                recognition_prompt(position),
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=RECOGNITION_SCHEMA,
            ),
        )
        self._last_latency_ms = int((time.time() - start_time) * 1000)
        self.logger.debug("recognition_response", latency_ms=self._last_latency_ms)
        return response.text or "{}"

    async def _request_speech(self, text: str) -> bytes | None:
        response = await self._client.aio.models.generate_content(
            model=self.narration_model,
            contents=NARRATION_PROMPT.format(text=text),
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(
                            voice_name=self.voice,
                        )
                    )
                ),
            ),
        )

        if not response.candidates or not response.candidates[0].content:
            return None
        for part in response.candidates[0].content.parts or []:
            if part.inline_data and part.inline_data.data:
                return part.inline_data.data
        return None

    async def _request_answer(self, question: str, place_name: str) -> Answer:
        response = await self._client.aio.models.generate_content(
            model=self.inquiry_model,
            contents=INQUIRY_PROMPT.format(landmark=place_name, question=question),
            config=types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            ),
        )

        sources: list[str] = []
        if response.candidates:
            metadata = response.candidates[0].grounding_metadata
            for chunk in (metadata.grounding_chunks or []) if metadata else []:
                if chunk.web and chunk.web.uri:
                    sources.append(chunk.web.uri)

        return Answer(text=response.text or "", sources=sources)

    def get_status(self) -> dict:
        status = super().get_status()
        status.update(
            {
                "recognition_model": self.recognition_model,
                "narration_model": self.narration_model,
                "inquiry_model": self.inquiry_model,
                "voice": self.voice,
                "latency_ms": self._last_latency_ms,
            }
        )
        return status
