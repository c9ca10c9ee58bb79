"""
LLM Client
Thin provider layer on top of LiteLLM.

Each provider is a small strategy object that knows how to shape the
completion request (model prefix, credentials, base URL). LiteLLM absorbs the
different HTTP envelopes, so every provider yields plain response text and the
rest of the engine never branches on provider.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import litellm

from .exceptions import ConfigurationError, LLMError

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Credentials and provider selection for one run"""

    provider: str = "anthropic"
    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 0

    @property
    def backend(self) -> "LLMProvider":
        return get_provider(self.provider)

    def has_credentials(self) -> bool:
        """True when a call can be attempted at all (key present, or provider needs none)"""
        try:
            provider = self.backend
        except ConfigurationError:
            return False
        return bool(self.api_key) or not provider.requires_api_key

    def validate(self) -> None:
        provider = self.backend
        if provider.requires_api_key and not self.api_key:
            raise ConfigurationError(
                f"LLM provider '{self.provider}' requires an API key "
                f"(set {provider.api_key_env} or pass api_key)"
            )
        if self.timeout <= 0:
            raise ConfigurationError("LLM timeout must be > 0 seconds")

    def describe(self) -> str:
        return f"{self.provider}/{self.model or self.backend.default_model}"


class LLMProvider(ABC):
    """Request-shaping strategy for one provider"""

    name: str = ""
    default_model: str = ""
    requires_api_key: bool = True
    api_key_env: Optional[str] = None

    @abstractmethod
    def completion_kwargs(self, config: LLMConfig) -> Dict[str, Any]:
        """LiteLLM keyword arguments for this provider (model, credentials, endpoint)"""

    def extract_text(self, response: Any) -> str:
        """Pull the assistant text out of a LiteLLM response"""
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise LLMError(f"{self.name} response has no message content") from e
        return content or ""

    def _model(self, config: LLMConfig) -> str:
        model = config.model or self.default_model
        prefix = f"{self.name}/"
        return model if model.startswith(prefix) else prefix + model


class AnthropicProvider(LLMProvider):
    """Cloud API: API key header + Anthropic messages envelope"""

    name = "anthropic"
    default_model = "claude-3-5-sonnet-20241022"
    api_key_env = "ANTHROPIC_API_KEY"

    def completion_kwargs(self, config: LLMConfig) -> Dict[str, Any]:
        return {'model': self._model(config), 'api_key': config.api_key}


class OpenAIProvider(LLMProvider):
    name = "openai"
    default_model = "gpt-4o-mini"
    api_key_env = "OPENAI_API_KEY"

    def completion_kwargs(self, config: LLMConfig) -> Dict[str, Any]:
        kwargs = {'model': self._model(config), 'api_key': config.api_key}
        if config.base_url:
            kwargs['api_base'] = config.base_url
        return kwargs


class OllamaProvider(LLMProvider):
    """Local / self-hosted API: base URL + model name, no key"""

    name = "ollama"
    default_model = "llama3.3"
    requires_api_key = False
    default_base_url = "http://localhost:11434"

    def completion_kwargs(self, config: LLMConfig) -> Dict[str, Any]:
        return {
            'model': self._model(config),
            'api_base': (config.base_url or self.default_base_url).rstrip('/'),
        }


PROVIDERS: Dict[str, LLMProvider] = {}


def register_provider(provider: LLMProvider) -> None:
    PROVIDERS[provider.name] = provider


def get_provider(name: str) -> LLMProvider:
    try:
        return PROVIDERS[(name or '').lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown LLM provider '{name}'. Available: {', '.join(sorted(PROVIDERS))}"
        ) from None


for _provider in (AnthropicProvider(), OpenAIProvider(), OllamaProvider()):
    register_provider(_provider)


class LLMClient:
    """Sends one system + user prompt pair and returns the model's text"""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.provider = config.backend

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 1200,
        temperature: float = 0.1
    ) -> str:
        """
        Run a single completion.

        Raises:
            LLMError: on transport/auth/timeout failures or an empty reply
        """
        kwargs = self.provider.completion_kwargs(self.config)
        logger.debug(f"   LLM call: {kwargs['model']} (max_tokens={max_tokens})")
        try:
            response = await litellm.acompletion(
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user}
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.config.timeout,
                num_retries=self.config.max_retries,
                **kwargs
            )
        except Exception as e:
            raise LLMError(f"{self.provider.name} call failed: {e}") from e

        text = self.provider.extract_text(response)
        if not text.strip():
            raise LLMError(f"{self.provider.name} returned an empty response")
        return text
