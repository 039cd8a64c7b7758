"""
LLM Service
Single-shot prompt-to-text generation with OpenAI chat models.
"""
from typing import Optional
import structlog
from openai import AsyncOpenAI

from docqa.config import Settings

logger = structlog.get_logger()


class LLMService:
    """
    Stateless text generation.

    Fails closed: any provider error, timeout or empty completion returns
    FAILURE_MESSAGE instead of raising, so every caller always gets text.
    """

    FAILURE_MESSAGE = "Sorry, I couldn't generate an answer right now. Please try again shortly."

    def __init__(self, settings: Settings, client: AsyncOpenAI = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.provider_timeout_seconds,
            max_retries=0,
        )

    async def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        deterministic: bool = False,
    ) -> str:
        """
        Generate a completion for a single prompt.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature (defaults to settings.llm_temperature)
            deterministic: Force temperature 0 and a fixed seed

        Returns:
            Completion text, or FAILURE_MESSAGE
        """
        kwargs = {
            "model": self.settings.chat_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.settings.llm_temperature if temperature is None else temperature,
        }
        if deterministic:
            kwargs["temperature"] = 0.0
            kwargs["seed"] = self.settings.llm_seed

        try:
            response = await self.client.chat.completions.create(**kwargs)
            content = response.choices[0].message.content
        except Exception as e:
            logger.error("LLM generation failed", error=str(e))
            return self.FAILURE_MESSAGE

        if not content or not content.strip():
            logger.warning("LLM returned an empty completion")
            return self.FAILURE_MESSAGE

        return content.strip()

    async def close(self):
        await self.client.close()
