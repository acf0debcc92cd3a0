"""Free-text Q&A about the held place."""

from __future__ import annotations

from locallens.common.events import EventBus
from locallens.common.logging import get_logger
from locallens.models import ChatTurn
from locallens.remote.base import InquiryClient

FALLBACK_MESSAGE = "The local sensor network is experiencing interference. Try again shortly."


class InquiryController:
    """Keeps the chat log and sends one question at a time."""

    def __init__(
        self,
        client: InquiryClient,
        event_bus: EventBus | None = None,
        fallback_message: str = FALLBACK_MESSAGE,
    ) -> None:
        self.client = client
        self.event_bus = event_bus
        self.fallback_message = fallback_message
        self.log: list[ChatTurn] = []
        self._pending = False
        # Bumped by clear(); answers for an older log are dropped
        self._session = 0
        self.logger = get_logger("inquiry")

    @property
    def is_pending(self) -> bool:
        return self._pending

    async def ask(self, question: str, place_name: str) -> ChatTurn | None:
        """Ask ``question`` about ``place_name`` and append both turns.

        Blank questions and questions sent while another is pending are
        ignored and return None, as is an answer arriving after ``clear``.
        Otherwise returns the AI turn.
        """
        question = question.strip()
        if not question or self._pending:
            return None

        session = self._session
        self._pending = True
        self.log.append(ChatTurn(role="user", text=question))
        self._emit("inquiry.asked", place=place_name, question=question)
        try:
            text = await self.client.ask(question, place_name)
        except Exception as e:
            self.logger.warning("inquiry_failed", place=place_name, error=str(e))
            text = self.fallback_message
        finally:
            self._pending = False

        if session != self._session:
            self.logger.debug("inquiry_answer_discarded", place=place_name)
            return None

        turn = ChatTurn(role="ai", text=text)
        self.log.append(turn)
        self._emit("inquiry.answered", place=place_name)
        return turn

    def clear(self) -> None:
        self._session += 1
        self.log.clear()

    def _emit(self, topic: str, **data) -> None:
        if self.event_bus:
            self.event_bus.emit(topic, source="inquiry", **data)
