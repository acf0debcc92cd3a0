"""Tests for the remote service capabilities and providers."""

import json
from types import SimpleNamespace

import httpx
import pytest

from locallens.common.ids import SequentialIds
from locallens.config import Config
from locallens.errors import ProviderError
from locallens.models import EncodedImage, NoPlace, Position, Recognized
from locallens.remote.base import Answer, with_sources
from locallens.remote.factory import create_service
from locallens.remote.gemini import GeminiService
from locallens.remote.mock import GRAND_CENTRAL_PAYLOAD, NO_PLACE_PAYLOAD, MockService
from locallens.remote.openai_compat import OpenAICompatibleService

FRAME = EncodedImage(data=b"\xff\xd8jpeg\xff\xd9", width=2, height=2)


def json_response(data: dict, url: str = "http://lan/v1/chat/completions") -> httpx.Response:
    return httpx.Response(200, json=data, request=httpx.Request("POST", url))


class TestWithSources:
    """Tests for source link formatting."""

    def test_no_sources(self):
        assert with_sources("Answer.", []) == "Answer."

    def test_sources_deduplicated_in_order(self):
        """Test that repeated links appear once, first-seen order."""
        text = with_sources(
            "Answer.",
            ["https://a.example", None, "https://b.example", "https://a.example"],
        )
        assert text == "Answer.\n\nSources:\n- https://a.example\n- https://b.example"


class TestMockService:
    """Tests for the scripted mock service."""

    @pytest.mark.asyncio
    async def test_default_script_alternates(self):
        """Test that the default script rejects first, then locks."""
        service = MockService(ids=SequentialIds())

        first = await service.recognize(FRAME)
        second = await service.recognize(FRAME)
        third = await service.recognize(FRAME)

        assert isinstance(first, NoPlace)
        assert first.reasoning == NO_PLACE_PAYLOAD["reasoning"]
        assert isinstance(second, Recognized)
        assert second.place.name == "Grand Central Terminal"
        assert len(second.stories) == 3
        assert isinstance(third, NoPlace)
        assert service.recognition_calls == 3

    @pytest.mark.asyncio
    async def test_scripted_error_becomes_no_place(self):
        """Test that a failing call never raises from recognize."""
        service = MockService(script=[ConnectionError("offline")])

        outcome = await service.recognize(FRAME)

        assert outcome == NoPlace()

    @pytest.mark.asyncio
    async def test_malformed_payload_becomes_no_place(self):
        service = MockService(script=[{"place": {"name": "Half"}}])
        assert await service.recognize(FRAME) == NoPlace()

    @pytest.mark.asyncio
    async def test_threshold_applied(self):
        service = MockService(script=[GRAND_CENTRAL_PAYLOAD], acceptance_threshold=0.95)
        outcome = await service.recognize(FRAME)
        assert isinstance(outcome, NoPlace)

    @pytest.mark.asyncio
    async def test_synthesize_returns_pcm(self):
        """Test that speech is whole 16-bit samples."""
        service = MockService()
        audio = await service.synthesize("Grand Central opened in 1913.")

        assert audio
        assert len(audio) % 2 == 0
        assert service.spoken == ["Grand Central opened in 1913."]

    @pytest.mark.asyncio
    async def test_ask_appends_sources(self):
        service = MockService()
        text = await service.ask("When did it open?", "Grand Central Terminal")

        assert text.startswith("Grand Central opened in 1913")
        assert text.count("https://en.wikipedia.org/wiki/Grand_Central_Terminal") == 1
        assert service.questions == [("When did it open?", "Grand Central Terminal")]

    @pytest.mark.asyncio
    async def test_empty_answer_message(self):
        service = MockService(answer=Answer(text="", sources=[]))
        text = await service.ask("Anything?", "Bryant Park")
        assert text == "I'm sorry, I couldn't find specific details on that."

    @pytest.mark.asyncio
    async def test_ask_failure_propagates(self):
        service = MockService(answer=RuntimeError("quota"))
        with pytest.raises(RuntimeError):
            await service.ask("Anything?", "Bryant Park")


class TestOpenAICompatibleService:
    """Tests for the OpenAI-compatible provider."""

    @pytest.fixture
    def service(self) -> OpenAICompatibleService:
        return OpenAICompatibleService(
            endpoint="http://lan/v1/",
            api_key="sk-test",
            ids=SequentialIds(),
        )

    def test_defaults(self, service):
        assert service.endpoint == "http://lan/v1"
        assert service.recognition_model == "gpt-4o-mini"
        assert service.voice == "alloy"
        assert service._headers()["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_recognize_sends_image_and_parses(self, service, monkeypatch):
        """Test the chat completion request and JSON content parsing."""
        sent = {}

        async def fake_post(path, payload):
            sent["path"] = path
            sent["payload"] = payload
            return json_response(
                {"choices": [{"message": {"content": json.dumps(GRAND_CENTRAL_PAYLOAD)}}]}
            )

        monkeypatch.setattr(service, "_post", fake_post)

        outcome = await service.recognize(FRAME, Position(latitude=40.75, longitude=-73.98))

        assert isinstance(outcome, Recognized)
        assert outcome.place.id == "id-1"
        assert sent["path"] == "/chat/completions"
        assert sent["payload"]["response_format"] == {"type": "json_object"}
        content = sent["payload"]["messages"][0]["content"]
        assert "latitude 40.75000" in content[0]["text"]
        assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_recognize_http_error_is_no_place(self, service, monkeypatch):
        async def fake_post(path, payload):
            raise httpx.ConnectError("refused")

        monkeypatch.setattr(service, "_post", fake_post)
        assert await service.recognize(FRAME) == NoPlace()

    @pytest.mark.asyncio
    async def test_speech_requests_pcm(self, service, monkeypatch):
        sent = {}

        async def fake_post(path, payload):
            sent.update(payload, path=path)
            return httpx.Response(
                200,
                content=b"\x00\x01" * 10,
                request=httpx.Request("POST", "http://lan/v1/audio/speech"),
            )

        monkeypatch.setattr(service, "_post", fake_post)

        audio = await service.synthesize("Hello")

        assert audio == b"\x00\x01" * 10
        assert sent["path"] == "/audio/speech"
        assert sent["response_format"] == "pcm"
        assert sent["voice"] == "alloy"

    @pytest.mark.asyncio
    async def test_answer_collects_url_citations(self, service, monkeypatch):
        citation = {"type": "url_citation", "url_citation": {"url": "https://x.example"}}

        async def fake_post(path, payload):
            return json_response(
                {
                    "choices": [
                        {
                            "message": {
                                "content": "It opened in 1913.",
                                "annotations": [citation, citation],
                            }
                        }
                    ]
                }
            )

        monkeypatch.setattr(service, "_post", fake_post)

        text = await service.ask("When?", "Grand Central")
        assert text == "It opened in 1913.\n\nSources:\n- https://x.example"


class TestGeminiService:
    """Tests for the Gemini provider with a stand-in SDK client."""

    @staticmethod
    def fake_client(response) -> SimpleNamespace:
        calls = []

        async def generate_content(**kwargs):
            calls.append(kwargs)
            return response

        models = SimpleNamespace(generate_content=generate_content)
        client = SimpleNamespace(aio=SimpleNamespace(models=models))
        client.calls = calls
        return client

    def test_defaults(self):
        service = GeminiService(api_key="test-key")
        assert service.recognition_model == "gemini-3-flash-preview"
        assert service.narration_model == "gemini-2.5-flash-preview-tts"
        assert service.voice == "Kore"

    @pytest.mark.asyncio
    async def test_answer_uses_grounding_chunks(self):
        """Test that grounded web links become deduplicated sources."""
        chunk = SimpleNamespace(web=SimpleNamespace(uri="https://g.example"))
        response = SimpleNamespace(
            text="Built in 1930.",
            candidates=[
                SimpleNamespace(
                    grounding_metadata=SimpleNamespace(grounding_chunks=[chunk, chunk]),
                )
            ],
        )
        service = GeminiService(api_key="test-key")
        service._client = self.fake_client(response)

        text = await service.ask("When was it built?", "Chrysler Building")

        assert text == "Built in 1930.\n\nSources:\n- https://g.example"
        call = service._client.calls[0]
        assert call["model"] == "gemini-3-flash-preview"
        assert "Chrysler Building" in call["contents"]

    @pytest.mark.asyncio
    async def test_speech_returns_inline_audio(self):
        part = SimpleNamespace(inline_data=SimpleNamespace(data=b"\x10\x00\x20\x00"))
        response = SimpleNamespace(
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
        )
        service = GeminiService(api_key="test-key")
        service._client = self.fake_client(response)

        assert await service.synthesize("Hello") == b"\x10\x00\x20\x00"

    @pytest.mark.asyncio
    async def test_recognize_parses_text(self):
        response = SimpleNamespace(text=json.dumps(GRAND_CENTRAL_PAYLOAD))
        service = GeminiService(api_key="test-key", ids=SequentialIds(prefix="g"))
        service._client = self.fake_client(response)

        outcome = await service.recognize(FRAME)

        assert isinstance(outcome, Recognized)
        assert outcome.place.id == "g-1"


class TestCreateService:
    """Tests for provider selection."""

    def test_mock_mode_selects_mock(self):
        config = Config(mock_mode=True)
        assert isinstance(create_service(config), MockService)

    def test_gemini_requires_api_key(self):
        config = Config()
        config.remote.api_key = None
        with pytest.raises(ProviderError):
            create_service(config)

    def test_gemini_with_key(self):
        config = Config()
        config.remote.api_key = "test-key"
        config.remote.voice = "Puck"
        service = create_service(config)
        assert isinstance(service, GeminiService)
        assert service.voice == "Puck"

    def test_openai_provider(self):
        config = Config()
        config.remote.provider = "openai"
        config.remote.openai_endpoint = "http://localhost:11434/v1"
        service = create_service(config)
        assert isinstance(service, OpenAICompatibleService)
        assert service.endpoint == "http://localhost:11434/v1"

    def test_empty_answer_message_from_config(self):
        config = Config(mock_mode=True)
        config.inquiry.empty_answer_message = "Nothing found."
        assert create_service(config).empty_answer == "Nothing found."
