import logging
from functools import lru_cache
from typing import AsyncIterator, List, Optional, Protocol, Sequence

from langsmith import traceable
from openai import AsyncOpenAI

from ledger.config import settings
from ledger.services.session_machine import ChatMessage

logger = logging.getLogger("ledger.chat")


class ChatBackend(Protocol):
    def stream(self, system_prompt: str, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        ...


class OpenAIChatBackend:
    """Streams assistant replies from the OpenAI chat completions API."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.chat_model
        self.temperature = settings.chat_temperature

    @traceable(run_type="llm", name="stream_chat")
    async def stream(self, system_prompt: str, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        payload = [{"role": "system", "content": system_prompt}]
        payload += [{"role": m.role.value, "content": m.text} for m in messages]

        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=payload,
            temperature=self.temperature,
            stream=True,
        )
        try:
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            # stop pulling tokens if the consumer went away
            await stream.close()


@lru_cache()
def _default_backend() -> OpenAIChatBackend:
    return OpenAIChatBackend()


def get_chat_backend() -> ChatBackend:
    """FastAPI dependency; overridden in tests."""
    return _default_backend()


class AssistantTurn:
    """Accumulates one streamed assistant reply."""

    def __init__(self):
        self.parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self.parts)


async def relay_turn(
    backend: ChatBackend,
    system_prompt: str,
    messages: Sequence[ChatMessage],
    turn: AssistantTurn,
) -> AsyncIterator[str]:
    """Yield reply chunks as they arrive, recording them on turn."""
    async for chunk in backend.stream(system_prompt, messages):
        turn.parts.append(chunk)
        yield chunk
    logger.info("assistant_turn_completed", extra={"chars": len(turn.text)})
