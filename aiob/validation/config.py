"""
AIOB Configuration - Configuration loading and validation.

This module provides the Config class for managing AIOB configuration
from both global (~/.aiob/config.yaml) and local (.aiob/config.yaml)
sources.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.errors import AiobError


class ConfigError(AiobError):
    """Raised when there's a configuration error."""

    pass


ENV_API_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


class ProviderConfig(BaseModel):
    """Configuration for an LLM provider."""

    api_key: Optional[str] = None
    api_base: Optional[str] = None
    default_model: Optional[str] = None
    max_tokens: int = 2000
    temperature: float = 0.7
    enabled: bool = True
    token_budget: Optional[int] = Field(default=None, ge=0)


class AgentProfileConfig(BaseModel):
    """Configuration for one collaborating agent."""

    provider: Optional[str] = None
    model: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)
    enabled: bool = True


class OrchestratorConfig(BaseModel):
    """Configuration for the orchestration loop."""

    summary_chars: int = Field(default=200, ge=0)
    timeout_ms: int = Field(default=120_000, gt=0)
    session_dir: str = ".aicf/recent"
    budget_file: str = ".aicf/budget.yaml"
    reject_empty_tasks: bool = False


class AiobConfig(BaseModel):
    """Complete AIOB configuration schema."""

    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    agents: Dict[str, AgentProfileConfig] = Field(default_factory=dict)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    @field_validator("agents")
    @classmethod
    def _agent_ids_not_blank(cls, agents: Dict[str, AgentProfileConfig]) -> Dict[str, AgentProfileConfig]:
        for agent_id in agents:
            if not agent_id.strip():
                raise ValueError("agent ids must not be blank")
        return agents


class Config:
    """
    AIOB configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.aiob/config.yaml
    - Local: .aiob/config.yaml (project-specific)

    Local configuration overrides global configuration.

    Example:
        >>> config = Config.load()
        >>> registry = config.build_registry()
        >>> config.merged.orchestrator.summary_chars
        200
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".aiob"
    LOCAL_CONFIG_DIR = Path(".aiob")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._merged: Optional[AiobConfig] = None

    @classmethod
    def load(cls) -> "Config":
        """
        Load configuration from default locations.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if data else {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    @property
    def merged(self) -> AiobConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = AiobConfig(**self.get_merged_config())
            except (ValidationError, TypeError) as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def get_provider_config(self, provider_name: str) -> Optional[ProviderConfig]:
        """Get configuration for a specific provider."""
        return self.merged.providers.get(provider_name)

    def get_api_key(self, provider_name: str) -> Optional[str]:
        """
        Get API key for a provider.

        Checks config first, then environment variables.
        """
        provider = self.get_provider_config(provider_name)
        if provider and provider.api_key:
            return provider.api_key

        env_var = ENV_API_KEYS.get(provider_name)
        if env_var:
            return os.environ.get(env_var) or None

        return None

    def build_registry(self) -> CapabilityRegistry:
        """
        Build the capability registry from the ``agents`` section.

        Falls back to the built-in roster when no agents are configured.
        """
        agents = self.merged.agents
        if not agents:
            return CapabilityRegistry.default()

        return CapabilityRegistry(
            AgentProfile(
                id=agent_id,
                capabilities=frozenset(agent.capabilities),
                provider=agent.provider,
                model=agent.model,
            )
            for agent_id, agent in agents.items()
            if agent.enabled
        )

    def session_dir(self, root: Optional[Path] = None) -> Path:
        """Resolve the session directory against ``root`` (default: cwd)."""
        return self._resolve(self.merged.orchestrator.session_dir, root)

    def budget_path(self, root: Optional[Path] = None) -> Path:
        """Resolve the budget ledger file against ``root`` (default: cwd)."""
        return self._resolve(self.merged.orchestrator.budget_file, root)

    def token_budgets(self) -> Dict[str, Optional[int]]:
        """Provider name -> token budget, for every configured provider."""
        return {name: provider.token_budget for name, provider in self.merged.providers.items()}

    @staticmethod
    def _resolve(value: str, root: Optional[Path]) -> Path:
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return (root or Path.cwd()) / path

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def create_default_local(cls, root: Optional[Path] = None) -> Path:
        """Create a default project configuration file."""
        config_dir = (root or Path.cwd()) / cls.LOCAL_CONFIG_DIR
        config_file = config_dir / "config.yaml"

        if config_file.exists():
            return config_file

        config_dir.mkdir(parents=True, exist_ok=True)

        default_config = {
            "providers": {
                "anthropic": {
                    "api_key": None,  # Set via ANTHROPIC_API_KEY env var
                    "default_model": "claude-3-5-sonnet-20241022",
                    "token_budget": None,  # Unset means unlimited
                },
                "openai": {
                    "api_key": None,  # Set via OPENAI_API_KEY env var
                    "default_model": "gpt-4",
                    "token_budget": None,
                },
                "openrouter": {
                    "api_key": None,  # Set via OPENROUTER_API_KEY env var
                    "default_model": "anthropic/claude-3.5-sonnet",
                    "token_budget": None,
                },
            },
            "orchestrator": OrchestratorConfig().model_dump(),
        }

        with open(config_file, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

        return config_file
