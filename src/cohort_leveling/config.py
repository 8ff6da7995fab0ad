"""Configuration management for cohort leveling."""

from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SECTIONS = ["Lily", "Camellia", "Daisy", "Sunflower", "Marigold", "Snapdragon"]


class DatabaseConfig(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True)

    url: Optional[str] = Field(None, validation_alias="DATABASE_URL")
    pool_min_size: int = Field(1, validation_alias="DATABASE_POOL_MIN_SIZE")
    pool_max_size: int = Field(10, validation_alias="DATABASE_POOL_MAX_SIZE")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL connection string")
        if "[PASSWORD]" in v:
            raise ValueError("DATABASE_URL contains placeholder password - please set actual password")
        return v


class LevelingConfig(BaseSettings):
    """
    Tunable parameters of the placement algorithm.

    Every value can be overridden with a LEVELING_-prefixed environment
    variable (lists as JSON, e.g. LEVELING_SECTIONS='["A","B"]') or loaded
    from a YAML file with from_yaml().
    """

    model_config = SettingsConfigDict(env_prefix="LEVELING_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    sections: List[str] = Field(default_factory=lambda: list(DEFAULT_SECTIONS))

    test_weight: float = 0.3
    grade_weight: float = 0.4
    anecdotal_weight: float = 0.3

    safety_floor_min_correct: float = 4
    safety_floor_min_accuracy: float = 0.10

    # Ratio used when a signal is entirely absent
    neutral_ratio: float = 0.5

    emergency_move_grades: List[int] = Field(default_factory=lambda: [1])

    @field_validator("sections")
    @classmethod
    def validate_sections(cls, v):
        """Sections must be a non-empty ordered list of unique names."""
        if not v:
            raise ValueError("At least one section is required")
        if len(set(v)) != len(v):
            raise ValueError("Section names must be unique")
        return v

    @field_validator("test_weight", "grade_weight", "anecdotal_weight", "neutral_ratio")
    @classmethod
    def validate_unit_interval(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("Weights and ratios must be within [0, 1]")
        return v

    @field_validator("safety_floor_min_accuracy")
    @classmethod
    def validate_accuracy(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("safety_floor_min_accuracy must be within [0, 1]")
        return v

    @model_validator(mode="after")
    def validate_weight_sum(self):
        """Composite weights must sum to 1 so the composite stays in [0, 1]."""
        total = self.test_weight + self.grade_weight + self.anecdotal_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Composite weights must sum to 1.0 (got {total:.3f})")
        return self

    @property
    def section_count(self) -> int:
        return len(self.sections)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "LevelingConfig":
        """Load leveling parameters from a YAML file; missing keys keep their defaults."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if "leveling" in data:
            data = data["leveling"]
        return cls(**data)


class AppConfig(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True)

    name: str = Field("cohort-leveling", validation_alias="APP_NAME")
    version: str = Field("0.1.0", validation_alias="APP_VERSION")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    debug: bool = Field(False, validation_alias="DEBUG")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    leveling: LevelingConfig = Field(default_factory=LevelingConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment."""
        return cls()


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings

    if _settings is None:
        _settings = Settings.load()
    return _settings
