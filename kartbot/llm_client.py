"""
Chat completion client used to generate answers.

Wraps AsyncOpenAI chat completions behind the small GenerationProvider
interface. Failures are raised as ProviderError and are not retried: a
caller either gets a complete reply or an error.
"""
import logging
from typing import Dict, List, Optional, Protocol, runtime_checkable

from openai import AsyncOpenAI, OpenAIError

from kartbot import config
from kartbot.errors import ProviderError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


@runtime_checkable
class GenerationProvider(Protocol):
    async def generate(self, messages: List[Message]) -> str: ...


class OpenAIChatClient:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = config.CHAT_MODEL,
        temperature: float = config.GENERATION_TEMPERATURE,
    ):
        self.client = client or AsyncOpenAI(api_key=config.OPENAI_API_KEY)
        self.model = model
        self.temperature = temperature

    async def generate(self, messages: List[Message]) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                presence_penalty=0.2,
                frequency_penalty=0.2,
            )
        except OpenAIError as e:
            raise ProviderError(f"Chat completion failed: {e}") from e

        choice = completion.choices[0] if completion.choices else None
        content = (choice.message.content if choice and choice.message else None) or ""
        if completion.usage:
            logger.info(f"[LLM] {self.model} reply, usage: {completion.usage.total_tokens} tokens")
        return content.strip()

    async def warmup(self) -> None:
        """Send a tiny request so the first real user prompt is fast."""
        await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": "warmup"}, {"role": "user", "content": "ping"}],
            max_tokens=8,
            temperature=0,
        )
