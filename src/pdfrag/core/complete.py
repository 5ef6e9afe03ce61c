"""OpenAI chat completion client."""

import logging
from typing import Protocol

import openai

from .embed import to_provider_error

logger = logging.getLogger(__name__)


class Completer(Protocol):
    """Maps a system and user prompt to generated text."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        ...


class OpenAIChatCompleter:
    """Completion client backed by the OpenAI chat completions API."""

    def __init__(self, client: openai.AsyncOpenAI, model: str = "gpt-3.5-turbo"):
        self.client = client
        self.model = model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            logger.error(f"Chat completion failed: {e}")
            raise to_provider_error(e) from e

        return response.choices[0].message.content or ""
