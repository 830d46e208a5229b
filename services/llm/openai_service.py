"""
=====================================================
Voice Scheduling Platform - OpenAI LLM Service
=====================================================
Chat completions used to summarize voicemail transcripts
"""

from typing import Optional

from loguru import logger
from openai import AsyncOpenAI

from config.settings import get_settings
from .llm_base import (
    LLMServiceBase,
    LLMRequest,
    LLMResponse,
    LLMRole,
)


class OpenAILLM(LLMServiceBase):
    """
    OpenAI chat completion service

    gpt-4o-mini by default: fast and cheap for short summaries.
    Request-level temperature and max_tokens override the defaults.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 200,
    ):
        """
        Initialize OpenAI LLM service

        Args:
            api_key: OpenAI API key
            model: Model to use
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens in response
        """
        super().__init__(api_key, model)

        self.temperature = temperature
        self.max_tokens = max_tokens

        self._client: Optional[AsyncOpenAI] = None

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client"""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def chat(self, request: LLMRequest) -> LLMResponse:
        """
        Non-streaming chat completion

        Args:
            request: LLM request

        Returns:
            Complete LLM response
        """
        client = await self._get_client()

        try:
            messages = [msg.to_dict() for msg in request.messages]

            logger.info(f"OpenAI: Sending {len(messages)} messages to {self.model}")

            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature if request.temperature is None else request.temperature,
                max_tokens=self.max_tokens if request.max_tokens is None else request.max_tokens,
            )

            choice = response.choices[0]
            usage = getattr(response, "usage", None)
            if usage:
                logger.debug(f"OpenAI: {usage.total_tokens} tokens used")

            return LLMResponse(
                content=(choice.message.content or "").strip(),
                role=LLMRole.ASSISTANT,
                finish_reason=choice.finish_reason,
                tokens_used=usage.total_tokens if usage else 0,
            )

        except Exception as e:
            logger.error(f"OpenAI: Chat error: {e}")
            raise


def create_openai_llm(config: dict = None) -> OpenAILLM:
    """
    Factory function to create OpenAI LLM service

    Args:
        config: Optional overrides (keys as in Settings)

    Returns:
        Configured OpenAILLM instance
    """
    settings = get_settings()
    config = config or {}
    return OpenAILLM(
        api_key=config.get('openai_api_key', settings.openai_api_key),
        model=config.get('openai_model', settings.openai_model),
        temperature=config.get('openai_temperature', settings.openai_temperature),
        max_tokens=config.get('openai_max_tokens', settings.openai_max_tokens),
    )
