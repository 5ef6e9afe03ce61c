"""OpenAI embedding client and provider error translation."""

import logging
from typing import List, Protocol

import openai

from .errors import ProviderError, ProviderErrorKind

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}

# Max input tokens for the OpenAI embedding models
MAX_INPUT_TOKENS = 8191


class Embedder(Protocol):
    """Maps text to a fixed-length vector."""

    async def embed(self, text: str) -> List[float]:
        ...


def to_provider_error(exc: openai.OpenAIError) -> ProviderError:
    """Classify an OpenAI SDK error by whether retrying can help."""
    if isinstance(exc, (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)):
        kind = ProviderErrorKind.TRANSIENT
    elif isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
        kind = ProviderErrorKind.INVALID_INPUT
    elif isinstance(exc, openai.APIStatusError) and (exc.status_code >= 500 or exc.status_code in (408, 409)):
        kind = ProviderErrorKind.TRANSIENT
    else:
        kind = ProviderErrorKind.PERMANENT
    return ProviderError(str(exc), kind)


class OpenAIEmbedder:
    """Embedding client backed by the OpenAI embeddings API."""

    def __init__(self, client: openai.AsyncOpenAI, model: str = "text-embedding-ada-002"):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for a single text.

        Inputs longer than the model accepts are truncated for the request
        only; the caller's text is left untouched.
        """
        # Simple token approximation: ~4 chars per token
        if len(text) > MAX_INPUT_TOKENS * 4:
            logger.warning(f"Truncated text from {len(text)} to {MAX_INPUT_TOKENS * 4} characters")
            text = text[:MAX_INPUT_TOKENS * 4]

        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except openai.OpenAIError as e:
            logger.error(f"Failed to generate embedding: {e}")
            raise to_provider_error(e) from e

        return response.data[0].embedding
