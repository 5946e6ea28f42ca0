"""Configuration models for facet-coverage.

Provides Pydantic models for configuration, with support for a YAML file
and environment variables.

Example:
    >>> config = get_config()
    >>> config.thresholds.global_
    75.0
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from facet_coverage.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("facet.config.yaml")
"""Config file looked up in the working directory when no path is given."""

DEFAULT_FACET_TYPES: list[str] = [
    "product",
    "dx",
    "technical",
    "compliance",
    "business",
    "ux",
]


class ValidationOptions(BaseModel):
    """Toggles for the integrity validator."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    require_source_exists: bool = Field(
        default=True,
        description="Verify facet source documents exist",
    )
    require_section_exists: bool = Field(
        default=True,
        description="Verify sections exist in source documents",
    )
    require_all_tests_linked: bool = Field(
        default=False,
        description="Warn about tests without facet annotations",
    )


class Thresholds(BaseModel):
    """Coverage thresholds.

    Attributes:
        global_: Minimum global coverage percentage (YAML key ``global``).
        by_type: Minimum coverage percentage per facet type.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    global_: float = Field(
        default=75.0,
        ge=0.0,
        le=100.0,
        alias="global",
        description="Global coverage threshold",
    )
    by_type: dict[str, float] = Field(
        default_factory=dict,
        description="Per-type coverage thresholds",
    )


class StructureOptions(BaseModel):
    """Options for reading structure files."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    skip_invalid: bool = Field(
        default=False,
        description="Skip malformed structure files instead of aborting",
    )


class FacetConfig(BaseSettings):
    """Configuration for facet-coverage.

    Loads from environment variables and optionally from ``facet.config.yaml``.
    Environment variables take precedence over YAML values.

    Environment Variables:
        FACET_TEST_DIR: Glob for test directories
        FACET_THRESHOLDS__GLOBAL: Global coverage threshold
        FACET_STRUCTURES__SKIP_INVALID: Skip malformed structure files
    """

    model_config = SettingsConfigDict(
        env_prefix="FACET_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    structure_files: list[str] = Field(
        default=["features/**/.facet/structure.json"],
        description="Glob patterns for structure files",
    )
    test_dir: str = Field(
        default="features/**/tests",
        description="Glob pattern for test directories",
    )
    test_patterns: list[str] = Field(
        default=["**/*.spec.ts", "**/*.test.ts"],
        description="Test file patterns, relative to each test directory",
    )
    facet_pattern: list[str] = Field(
        default=["features/**/*.facet.md", "features/**/facets/*.md"],
        description="Glob patterns for facet markdown files",
    )
    facet_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FACET_TYPES),
        description="Known facet types, used to resolve Facets.CONSTANT references",
    )
    validation: ValidationOptions = Field(default_factory=ValidationOptions)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    structures: StructureOptions = Field(default_factory=StructureOptions)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Give environment variables precedence over YAML (init) values."""
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Dictionary of configuration values, or empty dict if file doesn't exist.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    if not config_path.exists():
        return {}

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(config_path, f"Invalid YAML ({e})") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(config_path, "Config root must be a mapping")
    return data


def get_config(config_path: Path | None = None) -> FacetConfig:
    """Load configuration from environment and optionally YAML file.

    Args:
        config_path: Optional path to YAML config file. Defaults to
            ``facet.config.yaml`` in the working directory.

    Returns:
        Validated FacetConfig instance.

    Raises:
        ConfigError: If the YAML file cannot be parsed.
        pydantic.ValidationError: If configuration values are invalid.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    yaml_config = load_yaml_config(config_path)

    # Environment variables override YAML values via pydantic-settings
    return FacetConfig(**yaml_config)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_FACET_TYPES",
    "FacetConfig",
    "StructureOptions",
    "Thresholds",
    "ValidationOptions",
    "get_config",
    "load_yaml_config",
]
