"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class TierThreshold(BaseModel):
    """Minimum success rate and message complexity required for a tier."""

    success_rate: float = Field(ge=0.0, le=1.0)
    complexity: float = Field(ge=0.0, le=10.0)


class AssessmentThresholds(BaseModel):
    """Cut-offs used by the proficiency assessor.

    Tier thresholds must be ordered: advanced >= intermediate >= elementary.
    """

    min_interactions: int = Field(default=3, ge=1)
    advanced: TierThreshold = TierThreshold(success_rate=0.8, complexity=6)
    intermediate: TierThreshold = TierThreshold(success_rate=0.6, complexity=4)
    elementary: TierThreshold = TierThreshold(success_rate=0.4, complexity=2)

    good_success_rate: float = Field(default=0.7, ge=0.0, le=1.0)
    poor_success_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    complex_sentence_score: float = Field(default=4.0, ge=0.0, le=10.0)
    high_error_count: int = Field(default=3, ge=0)
    growing_vocabulary: int = Field(default=20, ge=0)
    limited_vocabulary: int = Field(default=10, ge=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> "AssessmentThresholds":
        tiers = [self.advanced, self.intermediate, self.elementary]
        for higher, lower in zip(tiers, tiers[1:]):
            if higher.success_rate < lower.success_rate or higher.complexity < lower.complexity:
                raise ValueError("tier thresholds must be descending from advanced to elementary")
        if self.poor_success_rate > self.good_success_rate:
            raise ValueError("poor_success_rate must not exceed good_success_rate")
        if self.limited_vocabulary > self.growing_vocabulary:
            raise ValueError("limited_vocabulary must not exceed growing_vocabulary")
        return self


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened: dict[str, Any] = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'openai' in data:
            flattened['completion_model'] = data['openai'].get('completion_model')
            flattened['max_tokens'] = data['openai'].get('max_tokens')
        if 'rate_limit' in data:
            flattened['rate_limit_window_seconds'] = data['rate_limit'].get('window_seconds')
            flattened['rate_limit_max_requests'] = data['rate_limit'].get('max_requests')
        if 'retry' in data:
            retry = data['retry']
            flattened['retry_max_attempts'] = retry.get('max_retries')
            flattened['retry_initial_delay_seconds'] = retry.get('initial_delay_seconds')
            flattened['retry_max_delay_seconds'] = retry.get('max_delay_seconds')
            flattened['retry_backoff_multiplier'] = retry.get('backoff_multiplier')
        if 'storage' in data:
            storage = data['storage']
            flattened['storage_quota_mb'] = storage.get('quota_mb')
            flattened['max_messages_stored'] = storage.get('max_messages_stored')
            flattened['debounce_seconds'] = storage.get('debounce_seconds')
        if 'assessment' in data:
            flattened['assessment'] = data['assessment']

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Upstream completion service (required: startup fails without it)
    openai_api_key: str = Field(description="OpenAI API key")
    completion_model: str = Field(default="gpt-4o-mini")
    max_tokens: int = Field(default=1000)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Rate limiting
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_requests: int = Field(default=20, ge=1)

    # Client retry policy
    retry_max_attempts: int = Field(default=3, ge=0)
    retry_initial_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # Input and history
    max_message_length: int = Field(default=500, ge=1)
    max_history_messages: int = Field(default=20, ge=0)

    # Storage
    storage_quota_mb: float = Field(default=5.0, gt=0)
    max_messages_stored: int = Field(default=100, ge=1)
    debounce_seconds: float = Field(default=1.0, ge=0)

    assessment: AssessmentThresholds = Field(default_factory=AssessmentThresholds)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def storage_dir(self) -> Path:
        d = self.project_root / "data" / "store"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def storage_quota_bytes(self) -> int:
        return int(self.storage_quota_mb * 1024 * 1024)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
