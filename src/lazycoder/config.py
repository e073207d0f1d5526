"""Configuration management for LazyCoder.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to LazyCoderConfig constructor)
2. Environment variables (LAZYCODER_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [generation]
    code_model = "gemini-3-pro-preview"

    [pipeline]
    template = "serverless"
    generate_cicd = true

Example environment variable override:
    LAZYCODER_GENERATION__API_KEY="..."
    LAZYCODER_PIPELINE__THINKING_LEVEL=high
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lazycoder.models import AgentConfig, ProjectTemplate, ThinkingLevel


class GenerationConfig(BaseSettings):
    """Generation service (Gemini) configuration.

    Attributes:
        api_key: API key for the generation service
        analysis_model: Vision-capable model used to read the diagram
        code_model: Reasoning model used for code writing, review and audits
        fast_model: Cheaper model used for prose, diagrams and DevOps files
        thinking_budget_low: Thinking token budget for the ``low`` level
        thinking_budget_medium: Thinking token budget for the ``medium`` level
        thinking_budget_high: Thinking token budget for the ``high`` level
    """

    model_config = SettingsConfigDict(
        env_prefix="LAZYCODER_GENERATION__",
        extra="forbid",
    )

    api_key: str | None = Field(default=None)
    analysis_model: str = Field(default="gemini-2.5-flash")
    code_model: str = Field(default="gemini-3-pro-preview")
    fast_model: str = Field(default="gemini-2.5-flash")
    thinking_budget_low: int = Field(default=4096, ge=0, le=32768)
    thinking_budget_medium: int = Field(default=16384, ge=0, le=32768)
    thinking_budget_high: int = Field(default=32768, ge=0, le=32768)

    def thinking_budget(self, level: ThinkingLevel) -> int:
        """Return the thinking token budget for a thinking level."""
        budgets = {
            ThinkingLevel.LOW: self.thinking_budget_low,
            ThinkingLevel.MEDIUM: self.thinking_budget_medium,
            ThinkingLevel.HIGH: self.thinking_budget_high,
        }
        return budgets[level]


class ModulesConfig(BaseSettings):
    """Custom module archive filtering.

    Attributes:
        allowed_extensions: File extensions read as module context
        ignored_prefixes: Path prefixes skipped (hidden files, OS metadata)
        max_files: Upper bound on the number of files kept as context
    """

    model_config = SettingsConfigDict(
        env_prefix="LAZYCODER_MODULES__",
        extra="forbid",
    )

    allowed_extensions: list[str] = Field(
        default_factory=lambda: [".tf", ".md", ".json", ".yaml", ".txt"]
    )
    ignored_prefixes: list[str] = Field(default_factory=lambda: [".", "__MACOSX"])
    max_files: int = Field(default=200, ge=1, le=5000)

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        """Lowercase extensions and make sure each one starts with a dot."""
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="LAZYCODER_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class PipelineConfig(BaseSettings):
    """Default agent settings applied when a run does not override them.

    Attributes:
        template: Project template (standard, microservices, serverless)
        thinking_level: Reasoning depth for the code-writing stages
        custom_instructions: Free-text instructions appended to generation
        generate_cicd: Produce a GitHub Actions workflow
        generate_ansible: Produce an Ansible playbook
    """

    model_config = SettingsConfigDict(
        env_prefix="LAZYCODER_PIPELINE__",
        extra="forbid",
    )

    template: ProjectTemplate = Field(default=ProjectTemplate.STANDARD)
    thinking_level: ThinkingLevel = Field(default=ThinkingLevel.MEDIUM)
    custom_instructions: str = Field(default="")
    generate_cicd: bool = Field(default=False)
    generate_ansible: bool = Field(default=False)

    def to_agent_config(self, **overrides: Any) -> AgentConfig:
        """Snapshot these defaults into an immutable AgentConfig.

        Args:
            **overrides: Field values that replace the defaults; ``None``
                values are ignored.

        Returns:
            Frozen AgentConfig for a single run
        """
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return AgentConfig(**values)


class LazyCoderConfig(BaseSettings):
    """Root configuration for LazyCoder.

    Environment variable format for nested config:
        LAZYCODER_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="LAZYCODER_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    modules: ModulesConfig = Field(default_factory=ModulesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


def load_config(config_path: Path | None = None) -> LazyCoderConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./lazycoder.toml (current directory)
    3. ~/.config/lazycoder/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        LazyCoderConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "lazycoder.toml",
            Path.home() / ".config" / "lazycoder" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # Pydantic overlays environment variables on top of the TOML values
    try:
        return LazyCoderConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
