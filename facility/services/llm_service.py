"""
LLM Service - OpenAI API wrapper for chat completions and embeddings

Provides:
- Chat completion with token tracking
- Query and batch embeddings for the knowledge index
- Retries on rate limits and connection errors
- An explicit offline variant used when no credentials are configured
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Dict, Optional, Union

from openai import AsyncOpenAI, APIError, RateLimitError, APIConnectionError

from facility.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM completion"""
    content: str
    model: str
    tokens_prompt: int
    tokens_completion: int
    tokens_total: int
    finish_reason: Optional[str]


class OpenAILLMService:
    """
    OpenAI service for chat completions and embeddings.

    Handles:
    - Chat completions (non-streaming)
    - Token usage extraction (missing usage counts as zero)
    - Retry logic for transient errors
    - Embeddings for retrieval and ingestion
    """

    is_configured = True

    def __init__(self, api_key: str, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=settings.llm_timeout_seconds,
        )
        self.default_model = settings.chat_model
        self.embedding_model = settings.embedding_model
        self.default_temperature = settings.temperature
        self.default_max_tokens = settings.max_tokens
        self.max_retries = 3
        self.retry_delay = 1.0

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to settings.chat_model)
            temperature: Temperature for sampling (0-2)
            max_tokens: Maximum tokens to generate
            **kwargs: Additional parameters passed to OpenAI

        Returns:
            LLMResponse with content and token usage. content is empty when
            the provider returned no choices.
        """
        model = model or self.default_model
        temperature = temperature if temperature is not None else self.default_temperature
        max_tokens = max_tokens or self.default_max_tokens

        for attempt in range(self.max_retries):
            try:
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )

                usage = response.usage
                tokens_prompt = usage.prompt_tokens if usage else 0
                tokens_completion = usage.completion_tokens if usage else 0
                tokens_total = usage.total_tokens if usage else 0

                if not response.choices:
                    return LLMResponse(
                        content="",
                        model=response.model or model,
                        tokens_prompt=tokens_prompt,
                        tokens_completion=tokens_completion,
                        tokens_total=tokens_total,
                        finish_reason=None,
                    )

                choice = response.choices[0]
                return LLMResponse(
                    content=choice.message.content or "",
                    model=response.model or model,
                    tokens_prompt=tokens_prompt,
                    tokens_completion=tokens_completion,
                    tokens_total=tokens_total,
                    finish_reason=choice.finish_reason,
                )

            except RateLimitError as e:
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Rate limited, retrying in {wait_time}s: {e}")
                    await asyncio.sleep(wait_time)
                else:
                    raise

            except APIConnectionError as e:
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Connection error, retrying in {wait_time}s: {e}")
                    await asyncio.sleep(wait_time)
                else:
                    raise

            except APIError as e:
                logger.error(f"OpenAI API error: {e}")
                raise

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a single text"""
        response = await self.client.embeddings.create(
            model=self.embedding_model,
            input=text,
        )
        return response.data[0].embedding

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts, preserving input order"""
        if not texts:
            return []
        response = await self.client.embeddings.create(
            model=self.embedding_model,
            input=texts,
        )
        sorted_data = sorted(response.data, key=lambda x: x.index)
        return [item.embedding for item in sorted_data]


class OfflineLLMService:
    """
    Stand-in used when the OpenAI client could not be configured.

    Callers branch on the type (or is_configured) and take the degraded
    path; the methods raise if called anyway.
    """

    is_configured = False

    def __init__(self, reason: str = "OPENAI_API_KEY not configured"):
        self.reason = reason

    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> LLMResponse:
        raise RuntimeError(f"LLM service offline: {self.reason}")

    async def embed(self, text: str) -> List[float]:
        raise RuntimeError(f"LLM service offline: {self.reason}")

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError(f"LLM service offline: {self.reason}")


LLMService = Union[OpenAILLMService, OfflineLLMService]


def create_llm_service(api_key: Optional[str] = None) -> LLMService:
    """Build the configured variant, or the offline one if that is not possible."""
    api_key = api_key if api_key is not None else settings.openai_api_key
    if not api_key:
        logger.warning("OPENAI_API_KEY not found in settings - chat runs in offline mode")
        return OfflineLLMService()
    try:
        service = OpenAILLMService(api_key)
        logger.info(f"OpenAI client initialized (chat: {settings.chat_model}, embeddings: {settings.embedding_model})")
        return service
    except Exception as e:
        logger.error(f"Could not initialize OpenAI client: {e}", exc_info=True)
        return OfflineLLMService(reason=str(e))


# Singleton instance
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Get the LLM service singleton."""
    global _llm_service
    if _llm_service is None:
        _llm_service = create_llm_service()
    return _llm_service
