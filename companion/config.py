"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Companion configuration. All values come from environment variables."""

    # Anthropic (conscious layer)
    anthropic_api_key: str = Field(default="")
    conscious_model: str = Field(default="claude-haiku-4-5-20251001")
    conscious_temperature: float = Field(default=0.7)
    conscious_max_tokens: int = Field(default=1024)

    # Memory service (Graphiti temporal knowledge graph)
    memory_service_url: str = Field(default="")
    memory_search_timeout: float = Field(default=10.0)
    memory_store_timeout: float = Field(default=15.0)
    memory_health_timeout: float = Field(default=5.0)
    memory_max_facts: int = Field(default=5)
    memory_group_prefix: str = Field(default="companion")

    # Mem0 (alternative hosted memory backend)
    mem0_api_key: str = Field(default="")

    # Unconscious agents (external CLI processes)
    agent_command: str = Field(default="claude")
    agent_model: str = Field(default="claude-sonnet-4-5-20250929")
    agent_max_concurrent: int = Field(default=4)
    agent_timeout_ms: int = Field(default=30000)
    agent_kill_grace_ms: int = Field(default=2000)
    agent_config_dir: Path = Field(default=Path("cortex"))
    agent_config_dir_env: str = Field(default="CLAUDE_CONFIG_DIR")

    # Deep unconscious sweep
    deep_unconscious_enabled: bool = Field(default=False)
    deep_include_insights: bool = Field(default=False)

    # Retry policy
    retry_max_attempts: int = Field(default=3)
    retry_base_delay_ms: int = Field(default=1000)
    retry_max_delay_ms: int = Field(default=10000)

    # Context assembly
    known_names: str = Field(default="")

    # Turn pipeline
    serialize_turns: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_known_names(self) -> list[str]:
        """Parse KNOWN_NAMES into a list of lowercase names."""
        if not self.known_names.strip():
            return []
        return [name.strip().lower() for name in self.known_names.split(",") if name.strip()]


settings = Settings()
