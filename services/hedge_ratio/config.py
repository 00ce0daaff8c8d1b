"""Configuration management for the hedge ratio service."""

from typing import Any, Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HedgeRatioSettings(BaseSettings):
    """Hedge ratio service settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HEDGE_RATIO_",
        env_file="config.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Filter Configuration
    delta: float = Field(1e-4, gt=0.0, lt=1.0)
    observation_noise_variance: float = Field(1e-3, gt=0.0)
    quantity_scale: float = Field(2000.0, gt=0.0)

    # Persistence
    state_dir: str = Field("data/hedge_ratio_states")
    backup_retention_days: int = Field(7, ge=0)

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in {'json', 'console'}:
            raise ValueError(f"Unknown log format: {v}")
        return fmt

    def filter_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for constructing a HedgeRatioFilter."""
        return {
            'delta': self.delta,
            'observation_noise_variance': self.observation_noise_variance,
            'quantity_scale': self.quantity_scale
        }


# Global settings instance
settings = HedgeRatioSettings()
