"""Unit tests for configuration management.

Tests cover:
- Default configuration values
- TOML file loading
- Environment variable overrides
- Nested configuration resolution
- Validation errors for invalid configurations
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from lazycoder.config import (
    GenerationConfig,
    LazyCoderConfig,
    LoggingConfig,
    ModulesConfig,
    PipelineConfig,
    load_config,
)
from lazycoder.models import ProjectTemplate, ThinkingLevel


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host environment variables and config files out of these tests."""
    for key in list(os.environ):
        if key.startswith("LAZYCODER_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


class TestGenerationConfig:
    """Test GenerationConfig defaults and thinking budgets."""

    def test_default_values(self) -> None:
        config = GenerationConfig()
        assert config.api_key is None
        assert config.analysis_model == "gemini-2.5-flash"
        assert config.code_model == "gemini-3-pro-preview"
        assert config.fast_model == "gemini-2.5-flash"

    @pytest.mark.parametrize(
        "level,expected",
        [
            (ThinkingLevel.LOW, 4096),
            (ThinkingLevel.MEDIUM, 16384),
            (ThinkingLevel.HIGH, 32768),
        ],
    )
    def test_thinking_budget(self, level: ThinkingLevel, expected: int) -> None:
        assert GenerationConfig().thinking_budget(level) == expected

    def test_budget_validation(self) -> None:
        with pytest.raises(ValidationError):
            GenerationConfig(thinking_budget_high=40000)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GenerationConfig(temperature=0.5)


class TestModulesConfig:
    def test_default_values(self) -> None:
        config = ModulesConfig()
        assert config.allowed_extensions == [".tf", ".md", ".json", ".yaml", ".txt"]
        assert config.ignored_prefixes == [".", "__MACOSX"]
        assert config.max_files == 200

    def test_extensions_normalized(self) -> None:
        config = ModulesConfig(allowed_extensions=["TF", ".HCL"])
        assert config.allowed_extensions == [".tf", ".hcl"]

    def test_max_files_validation(self) -> None:
        with pytest.raises(ValidationError):
            ModulesConfig(max_files=0)


class TestLoggingConfig:
    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.format == "console"
        assert config.file is None

    def test_level_case_insensitive(self) -> None:
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="VERBOSE")

    def test_invalid_format(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log format"):
            LoggingConfig(format="xml")


class TestPipelineConfig:
    def test_to_agent_config_defaults(self) -> None:
        agent = PipelineConfig().to_agent_config()
        assert agent.template == ProjectTemplate.STANDARD
        assert agent.thinking_level == ThinkingLevel.MEDIUM
        assert agent.wants_devops is False

    def test_to_agent_config_overrides_skip_none(self) -> None:
        pipeline = PipelineConfig(generate_cicd=True, custom_instructions="keep it small")

        agent = pipeline.to_agent_config(
            template=ProjectTemplate.SERVERLESS,
            custom_instructions=None,
            generate_ansible=True,
        )

        assert agent.template == ProjectTemplate.SERVERLESS
        assert agent.custom_instructions == "keep it small"
        assert agent.generate_cicd is True
        assert agent.generate_ansible is True

    def test_agent_config_is_frozen(self) -> None:
        agent = PipelineConfig().to_agent_config()
        with pytest.raises(ValidationError):
            agent.generate_cicd = True


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        config = load_config()
        assert isinstance(config, LazyCoderConfig)
        assert config.pipeline.template == ProjectTemplate.STANDARD

    def test_explicit_file(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.toml"
        path.write_text(
            '[generation]\ncode_model = "gemini-2.5-pro"\n\n'
            '[pipeline]\ntemplate = "microservices"\ngenerate_cicd = true\n'
        )

        config = load_config(path)

        assert config.generation.code_model == "gemini-2.5-pro"
        assert config.pipeline.template == ProjectTemplate.MICROSERVICES
        assert config.pipeline.generate_cicd is True

    def test_current_directory_file(self, tmp_path: Path) -> None:
        (tmp_path / "lazycoder.toml").write_text("[modules]\nmax_files = 12\n")

        assert load_config().modules.max_files == 12

    def test_user_config_file(self, tmp_path: Path) -> None:
        user_dir = tmp_path / ".config" / "lazycoder"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text('[logging]\nformat = "json"\n')

        assert load_config().logging.format == "json"

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text('[logging]\nlevel = "LOUD"\n')

        with pytest.raises(ValueError, match="Invalid configuration in"):
            load_config(path)

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAZYCODER_GENERATION__API_KEY", "env-key")
        monkeypatch.setenv("LAZYCODER_PIPELINE__THINKING_LEVEL", "high")

        config = load_config()

        assert config.generation.api_key == "env-key"
        assert config.pipeline.thinking_level == ThinkingLevel.HIGH
