"""
Text generation provider abstraction.
Supports Anthropic (Claude) and OpenAI behind one async interface with a
non-streaming and a streaming call.
"""
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from services.exceptions import ConfigurationError, GenerationError
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

DEFAULT_MAX_TOKENS = 4096


class LLMProvider(ABC):
    """Abstract base class for text generation providers"""

    @abstractmethod
    async def generate(self, user_message: str, system_prompt: Optional[str] = None,
                       max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
        """Return the full completion text for a single user turn"""
        pass

    @abstractmethod
    def stream_generate(self, system_prompt: str, user_message: str,
                        max_tokens: int = DEFAULT_MAX_TOKENS) -> AsyncIterator[str]:
        """Yield text fragments as the model produces them"""
        pass

    async def close(self):
        pass


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider"""

    def __init__(self, api_key: Optional[str], model: str = "claude-sonnet-4-5-20250929"):
        self.api_key = api_key
        self.model = model
        self._client: Optional[AsyncAnthropic] = None

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("ANTHROPIC_API_KEY environment variable not configured")
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    def _request(self, user_message: str, system_prompt: Optional[str], max_tokens: int) -> dict:
        request = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_message}],
        }
        if system_prompt:
            request["system"] = system_prompt
        return request

    async def generate(self, user_message: str, system_prompt: Optional[str] = None,
                       max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(**self._request(user_message, system_prompt, max_tokens))
        except anthropic.APIError as e:
            raise GenerationError(f"Claude request failed: {e}") from e

        for block in response.content:
            if block.type == "text":
                return block.text
        return ""

    async def stream_generate(self, system_prompt: str, user_message: str,
                              max_tokens: int = DEFAULT_MAX_TOKENS) -> AsyncIterator[str]:
        client = self._get_client()
        try:
            async with client.messages.stream(**self._request(user_message, system_prompt, max_tokens)) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.APIError as e:
            raise GenerationError(f"Claude stream failed: {e}") from e

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


class OpenAIProvider(LLMProvider):
    """OpenAI provider"""

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o"):
        self.api_key = api_key
        self.model = model
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("OPENAI_API_KEY environment variable not configured")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    @staticmethod
    def _messages(user_message: str, system_prompt: Optional[str]) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})
        return messages

    async def generate(self, user_message: str, system_prompt: Optional[str] = None,
                       max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=self._messages(user_message, system_prompt),
            )
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream_generate(self, system_prompt: str, user_message: str,
                              max_tokens: int = DEFAULT_MAX_TOKENS) -> AsyncIterator[str]:
        client = self._get_client()
        try:
            stream = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=self._messages(user_message, system_prompt),
                stream=True,
            )
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI stream failed: {e}") from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI stream failed: {e}") from e
        finally:
            # Releases the HTTP connection when the consumer stops early
            await stream.close()

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None


def create_provider(provider_type: str, api_key: Optional[str], model: Optional[str] = None) -> LLMProvider:
    """
    Factory function to create the appropriate text generation provider.

    Args:
        provider_type: 'anthropic' (alias 'claude') or 'openai'
        api_key: API key for the provider; checked on first call, not here
        model: Optional model override

    Returns:
        LLMProvider instance
    """
    provider_type = (provider_type or "anthropic").lower()

    if provider_type in ("anthropic", "claude"):
        return ClaudeProvider(api_key, model) if model else ClaudeProvider(api_key)
    elif provider_type == "openai":
        return OpenAIProvider(api_key, model) if model else OpenAIProvider(api_key)
    else:
        raise ValueError(f"Unknown provider type: {provider_type}. Supported: 'anthropic', 'openai'")
