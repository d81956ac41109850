"""
AIOB Provider Base - the agent capability interface and vendor adapters.

The orchestrator talks to every agent through ``AgentBackend.invoke``.
Each AI vendor gets a ``Provider`` subclass that knows its API shape;
``ProviderAgent`` adapts a provider to the backend interface and turns
vendor failures into ``AgentError``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

import httpx

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.errors import AgentError
from aiob.validation.config import Config

logger = logging.getLogger(__name__)


@dataclass
class AgentReply:
    """What an agent returns for one invocation."""

    text: str
    token_count: int = 0


class AgentBackend(ABC):
    """
    The single interface the orchestrator depends on.

    Implementations must raise ``AgentError`` for every failure, including
    exceeding ``timeout_ms``.
    """

    @abstractmethod
    def invoke(self, prompt: str, context: str, timeout_ms: int) -> AgentReply:
        """
        Run one agent call.

        Args:
            prompt: What the agent should do.
            context: AICF-encoded record of the work done so far.
            timeout_ms: Upper bound for the call.

        Returns:
            AgentReply with the output text and tokens used.
        """
        pass


@dataclass
class ProviderResponse:
    """One chat completion as returned by a vendor API."""

    content: Optional[str]
    model: str
    provider: str
    token_usage: int = 0
    finish_reason: Optional[str] = "stop"


class Provider(ABC):
    """
    One AI vendor API. Subclasses build the request for their vendor and
    map its SDK exceptions onto AgentError kinds.
    """

    default_model: str = ""

    def __init__(self, model: Optional[str], config: Config):
        """
        Initialize the provider.

        Args:
            model: The model identifier. Falls back to the configured default.
            config: AIOB configuration.
        """
        provider_config = config.get_provider_config(self.provider_name)
        self.model = model or (provider_config.default_model if provider_config else None) or self.default_model
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Key used in config files and ENV_API_KEYS."""
        pass

    @abstractmethod
    def complete(self, prompt: str, context: str, timeout: float) -> ProviderResponse:
        """
        Generate a completion for the given prompt.

        Args:
            prompt: The prompt to complete.
            context: Shared AICF context, sent as the system message.
            timeout: Request timeout in seconds.

        Returns:
            ProviderResponse with the completion.
        """
        pass

    def get_api_key(self) -> Optional[str]:
        """API key from config, then the environment."""
        return self.config.get_api_key(self.provider_name)

    def _require_api_key(self) -> str:
        api_key = self.get_api_key()
        if not api_key:
            raise AgentError(f"{self.provider_name} API key not configured", kind=AgentError.UNAVAILABLE)
        return api_key

    def _settings(self):
        provider_config = self.config.get_provider_config(self.provider_name)
        max_tokens = provider_config.max_tokens if provider_config else 2000
        temperature = provider_config.temperature if provider_config else 0.7
        return max_tokens, temperature


class OpenAIProvider(Provider):
    """OpenAI API provider implementation."""

    default_model = "gpt-4"

    @property
    def provider_name(self) -> str:
        return "openai"

    def complete(self, prompt: str, context: str, timeout: float) -> ProviderResponse:
        """Generate completion using OpenAI API."""
        try:
            import openai
        except ImportError:
            raise ImportError("openai package required. Install with: pip install aiob[openai]")

        client = openai.OpenAI(api_key=self._require_api_key(), timeout=timeout)
        max_tokens, temperature = self._settings()

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": context},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APITimeoutError as e:
            raise AgentError(str(e), kind=AgentError.TIMEOUT) from e
        except openai.RateLimitError as e:
            raise AgentError(str(e), kind=AgentError.RATE_LIMIT) from e
        except openai.APIError as e:
            raise AgentError(str(e), kind=AgentError.PROVIDER) from e

        choice = response.choices[0]
        return ProviderResponse(
            content=choice.message.content,
            model=response.model,
            provider=self.provider_name,
            token_usage=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
        )


class AnthropicProvider(Provider):
    """Anthropic API provider implementation."""

    default_model = "claude-3-5-sonnet-20241022"

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def complete(self, prompt: str, context: str, timeout: float) -> ProviderResponse:
        """Generate completion using Anthropic API."""
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install aiob[anthropic]"
            )

        client = anthropic.Anthropic(api_key=self._require_api_key(), timeout=timeout)
        max_tokens, temperature = self._settings()

        try:
            response = client.messages.create(
                model=self.model,
                system=context,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except anthropic.APITimeoutError as e:
            raise AgentError(str(e), kind=AgentError.TIMEOUT) from e
        except anthropic.RateLimitError as e:
            raise AgentError(str(e), kind=AgentError.RATE_LIMIT) from e
        except anthropic.APIError as e:
            raise AgentError(str(e), kind=AgentError.PROVIDER) from e

        return ProviderResponse(
            content=response.content[0].text,
            model=response.model,
            provider=self.provider_name,
            token_usage=response.usage.input_tokens + response.usage.output_tokens,
            finish_reason=response.stop_reason,
        )


class OpenAICompatibleProvider(Provider):
    """
    Base for providers that expose an OpenAI-compatible chat completions API.

    Subclasses only need to set _base_url and provider_name.
    """

    _base_url: str = ""

    @property
    def provider_name(self) -> str:
        raise NotImplementedError

    def complete(self, prompt: str, context: str, timeout: float) -> ProviderResponse:
        provider_config = self.config.get_provider_config(self.provider_name)
        base_url = (provider_config.api_base if provider_config else None) or self._base_url
        max_tokens, temperature = self._settings()

        response = httpx.post(
            f"{base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._require_api_key()}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": context},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            timeout=timeout,
        )
        response.raise_for_status()
        data = response.json()

        choice = data["choices"][0]
        usage = data.get("usage") or {}

        return ProviderResponse(
            content=choice["message"]["content"],
            model=data.get("model", self.model),
            provider=self.provider_name,
            token_usage=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason", "stop"),
        )


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter, which routes one OpenAI-style API to many vendors."""

    _base_url = "https://openrouter.ai/api/v1"
    default_model = "anthropic/claude-3.5-sonnet"

    @property
    def provider_name(self) -> str:
        return "openrouter"


class ProviderFactory:
    """Maps provider names from agent profiles to Provider classes."""

    _providers: Dict[str, Type[Provider]] = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "openrouter": OpenRouterProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: Type[Provider]) -> None:
        """Register a new provider."""
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, provider_name: str, config: Config, model: Optional[str] = None) -> Provider:
        """
        Create a provider instance.

        Args:
            provider_name: Registered provider name (e.g. "anthropic").
            config: AIOB configuration.
            model: Model identifier; the provider default when omitted.

        Raises:
            ValueError: If the provider is not recognized.
        """
        if provider_name not in cls._providers:
            raise ValueError(f"Unknown provider: {provider_name}")
        return cls._providers[provider_name](model=model, config=config)

    @classmethod
    def available_providers(cls) -> List[str]:
        """Get list of available provider names."""
        return list(cls._providers.keys())


class ProviderAgent(AgentBackend):
    """Adapts a vendor Provider to the AgentBackend interface."""

    def __init__(self, agent_id: str, provider: Provider):
        self.agent_id = agent_id
        self.provider = provider

    def invoke(self, prompt: str, context: str, timeout_ms: int) -> AgentReply:
        try:
            response = self.provider.complete(prompt, context, timeout=timeout_ms / 1000)
        except AgentError as e:
            e.agent_id = self.agent_id
            raise
        except httpx.TimeoutException as e:
            raise AgentError(str(e), kind=AgentError.TIMEOUT, agent_id=self.agent_id) from e
        except httpx.HTTPStatusError as e:
            kind = AgentError.RATE_LIMIT if e.response.status_code == 429 else AgentError.PROVIDER
            raise AgentError(str(e), kind=kind, agent_id=self.agent_id) from e
        except httpx.HTTPError as e:
            raise AgentError(str(e), kind=AgentError.PROVIDER, agent_id=self.agent_id) from e
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise AgentError(
                f"Malformed response from {self.provider.provider_name}: {e}",
                kind=AgentError.MALFORMED_RESPONSE,
                agent_id=self.agent_id,
            ) from e

        if not isinstance(response.content, str):
            raise AgentError(
                f"{self.provider.provider_name} returned no text",
                kind=AgentError.MALFORMED_RESPONSE,
                agent_id=self.agent_id,
            )
        return AgentReply(text=response.content, token_count=max(0, response.token_usage or 0))


@dataclass
class MockAgent(AgentBackend):
    """
    Scripted agent for demos and tests.

    Returns ``responses`` in order (then a generic reply) and raises
    ``AgentError`` on the call numbers listed in ``fail_on``.
    """

    agent_id: str
    responses: Sequence[str] = ()
    fail_on: Iterable[int] = ()
    error_kind: str = AgentError.PROVIDER
    calls: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        self.fail_on = frozenset(self.fail_on)

    def invoke(self, prompt: str, context: str, timeout_ms: int) -> AgentReply:
        call_number = len(self.calls)
        self.calls.append((prompt, context))

        if call_number in self.fail_on:
            raise AgentError(
                f"{self.agent_id} failed on call {call_number}",
                kind=self.error_kind,
                agent_id=self.agent_id,
            )

        if call_number < len(self.responses):
            text = self.responses[call_number]
        else:
            text = f"Mock response from {self.agent_id} for: {prompt[:50]}"
        return AgentReply(text=text, token_count=len(text.split()))


def credentials_configured(profile: AgentProfile, config: Config) -> bool:
    """Whether the agent's provider has an API key available."""
    if profile.provider not in ProviderFactory.available_providers():
        return False
    provider_config = config.get_provider_config(profile.provider)
    if provider_config is not None and not provider_config.enabled:
        return False
    return bool(config.get_api_key(profile.provider))


def build_backends(registry: CapabilityRegistry, config: Config) -> Dict[str, AgentBackend]:
    """
    Create a ProviderAgent for every registered agent whose credentials are set.

    Agents without a provider or API key are skipped.
    """
    backends: Dict[str, AgentBackend] = {}
    for profile in registry:
        if not credentials_configured(profile, config):
            logger.info("Skipping %s: no credentials for provider %s", profile.id, profile.provider)
            continue
        provider = ProviderFactory.create(profile.provider, config, model=profile.model)
        backends[profile.id] = ProviderAgent(profile.id, provider)
    return backends


def mock_backends(registry: CapabilityRegistry, responses: Optional[Mapping[str, Sequence[str]]] = None) -> Dict[str, AgentBackend]:
    """Create a MockAgent for every registered agent."""
    responses = responses or {}
    return {p.id: MockAgent(p.id, responses=responses.get(p.id, ())) for p in registry}
