"""Provider selection."""

from __future__ import annotations

from locallens.common.ids import IdGenerator
from locallens.common.logging import get_logger
from locallens.config import Config
from locallens.errors import ProviderError
from locallens.remote.base import RemoteService
from locallens.remote.mock import MockService

logger = get_logger("remote")


def create_service(config: Config, ids: IdGenerator | None = None) -> RemoteService:
    """Build the remote service selected by ``config.remote.provider``.

    Mock mode always selects the mock service.

    Raises:
        ProviderError: The selected provider needs an API key and none is set.
    """
    remote = config.remote
    provider = "mock" if config.mock_mode else remote.provider

    service: RemoteService
    if provider == "mock":
        service = MockService(acceptance_threshold=remote.acceptance_threshold, ids=ids)

    elif provider == "gemini":
        if not remote.api_key:
            raise ProviderError(
                "Gemini provider requires an API key "
                "(set LOCALLENS_API_KEY or remote.api_key)"
            )
        # Imported here so the mock path does not need the SDK
        from locallens.remote.gemini import GeminiService

        service = GeminiService(
            api_key=remote.api_key,
            recognition_model=remote.recognition_model,
            narration_model=remote.narration_model,
            inquiry_model=remote.inquiry_model,
            voice=remote.voice,
            acceptance_threshold=remote.acceptance_threshold,
            ids=ids,
        )

    elif provider == "openai":
        from locallens.remote.openai_compat import OpenAICompatibleService

        service = OpenAICompatibleService(
            endpoint=remote.openai_endpoint,
            api_key=remote.api_key,
            recognition_model=remote.recognition_model,
            narration_model=remote.narration_model,
            inquiry_model=remote.inquiry_model,
            voice=remote.voice,
            timeout_seconds=remote.timeout_seconds,
            acceptance_threshold=remote.acceptance_threshold,
            ids=ids,
        )

    else:
        raise ProviderError(f"Unknown provider: {provider}")

    service.empty_answer = config.inquiry.empty_answer_message
    logger.info("remote_service_created", provider=service.provider_id)
    return service
