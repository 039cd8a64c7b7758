"""
Embedding Service
Generates vector embeddings using OpenAI's embedding models.
"""
from typing import List
import structlog
from openai import AsyncOpenAI, OpenAIError

from docqa.config import Settings
from docqa.exceptions import InvalidInput, ProviderError

logger = structlog.get_logger()


class EmbeddingService:
    """
    Maps text to a fixed-dimension vector.

    No retries and no caching here: the client is built with max_retries=0
    and callers decide what to do with a ProviderError.
    """

    # Maximum tokens per request (model limit)
    MAX_TOKENS_PER_REQUEST = 8191

    def __init__(self, settings: Settings, client: AsyncOpenAI = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.provider_timeout_seconds,
            max_retries=0,
        )

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (settings.embedding_dimensions long)

        Raises:
            InvalidInput: text is empty
            ProviderError: the provider call failed or timed out
        """
        if not text or not text.strip():
            raise InvalidInput("Text required for embedding")

        # Truncate if too long (rough estimate: 4 chars per token)
        max_chars = self.MAX_TOKENS_PER_REQUEST * 4
        if len(text) > max_chars:
            logger.warning("Text truncated for embedding", original_length=len(text))
            text = text[:max_chars]

        try:
            response = await self.client.embeddings.create(
                model=self.settings.embedding_model,
                input=text,
                dimensions=self.settings.embedding_dimensions,
            )
        except OpenAIError as e:
            logger.error("Embedding request failed", error=str(e))
            raise ProviderError("embedding", str(e)) from e

        if not response.data:
            logger.error("Embedding response contained no data")
            raise ProviderError("embedding", "empty response")

        return list(response.data[0].embedding)

    async def close(self):
        await self.client.close()
