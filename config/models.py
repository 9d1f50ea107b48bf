"""Pydantic configuration models for the EmuBench agent."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from exceptions import BootConfigError, ConfigFileNotFoundError, ConfigurationError


# Load .env file if present
load_dotenv()

LLMProvider = Literal["openai", "anthropic", "google"]

PROVIDER_BASE_URLS: dict[str, Optional[str]] = {
    "openai": None,
    "anthropic": "https://api.anthropic.com/v1/",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai/",
}


class _BootModel(BaseModel):
    """Boot documents are written by sibling services in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemoryWatch(_BootModel):
    """A named read of emulated game memory."""

    address: str = Field(description="Address in hex format, e.g. 0x80000000")
    offset: Optional[str] = Field(
        default=None,
        description="If the address is a pointer, the offset to read from",
    )
    size: int = Field(ge=1, description="Size in bytes")


class ConditionInput(_BootModel):
    """One named input of a condition expression."""

    name: str = ""
    raw_value: Optional[str] = None
    type: Literal["int", "hex", "float", "bool", "string"] = "string"
    parsed_value: Any = Field(default=None, exclude=True)


class Condition(_BootModel):
    """A structured expression over named inputs."""

    expression: Any
    inputs: dict[str, ConditionInput] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def name_inputs(cls, data: Any) -> Any:
        """Accept inputs as a list and default each input's name to its key."""
        if not isinstance(data, dict):
            return data
        raw_inputs = data.get("inputs")
        if isinstance(raw_inputs, list):
            raw_inputs = {item["name"]: item for item in raw_inputs if isinstance(item, dict) and item.get("name")}
        if isinstance(raw_inputs, dict):
            named = {}
            for key, value in raw_inputs.items():
                if isinstance(value, dict) and not value.get("name"):
                    value = {**value, "name": key}
                named[key] = value
            data = {**data, "inputs": named}
        return data


class EmuTask(_BootModel):
    """The task the agent is asked to accomplish."""

    name: str
    description: str


class AgentConfig(_BootModel):
    """LLM agent configuration for one benchmark run."""

    system_prompt: str = Field(description="System prompt sent with every turn")
    llm_provider: LLMProvider = Field(description="LLM vendor")
    model: str = Field(description="Model name to use for the LLM")
    max_iterations: int = Field(default=20, ge=1, description="Iteration budget")
    temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=4000, ge=1)
    context_history_size: int = Field(
        default=5,
        ge=0,
        description="Number of most recent turns replayed to the model (0 disables history)",
    )
    long_term_memory: bool = Field(default=True, description="Offer the memory note tool")
    allow_save_states: bool = Field(default=False, description="Offer save/load state slot tools")
    game_context: str = Field(default="", description="Static description of the game")
    task: EmuTask

    @field_validator("system_prompt", "model")
    @classmethod
    def require_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v


class EmuTestConfig(_BootModel):
    """Emulator-side configuration of a test."""

    __test__ = False

    id: str
    game_id: str = ""
    platform: Literal["gamecube"] = "gamecube"
    start_state_filename: str = ""
    context_mem_watches: dict[str, MemoryWatch] = Field(default_factory=dict)
    end_state_mem_watches: dict[str, MemoryWatch] = Field(default_factory=dict)
    success_condition: Optional[Condition] = None
    fail_condition: Optional[Condition] = None
    reward_condition: Optional[Condition] = None
    reward_description: Optional[str] = None


class BootConfig(_BootModel):
    """Static configuration for one benchmark run."""

    agent_config: AgentConfig
    test_config: EmuTestConfig


def parse_boot_config(data: Optional[dict[str, Any]], test_id: Optional[str] = None) -> BootConfig:
    """Validate a boot config document read from the state store."""
    if not data:
        raise BootConfigError("Could not read boot config", test_id=test_id)
    try:
        return BootConfig.model_validate(data)
    except ValidationError as exc:
        raise BootConfigError(f"Invalid boot config: {exc}", test_id=test_id) from exc


class ReportingConfig(BaseModel):
    """Reporting and output configuration."""

    reports_folder: Path = Field(
        default=Path("./reports"),
        description="Directory for saving reports",
    )
    output_format: Literal["none", "json", "junit", "all"] = Field(
        default="none",
        description="Report output format",
    )

    @field_validator("reports_folder", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServiceSettings(BaseModel):
    """Process-level settings for the agent service."""

    api_base_url: str = Field(
        default="https://api.emubench.com",
        description="Base URL of the control-plane API",
    )
    state_root: Path = Field(
        default=Path("./state"),
        description="Root directory of the persisted state store",
    )
    port: int = Field(default=8080, ge=1, le=65535)
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    llm_base_url: Optional[str] = Field(
        default=None,
        description="Override the provider endpoint (any OpenAI-compatible server)",
    )

    llm_timeout_seconds: float = Field(default=45.0, gt=0)
    llm_max_attempts: int = Field(default=3, ge=1, le=10)
    screenshot_retries: int = Field(default=2, ge=0)
    screenshot_retry_delay_seconds: float = Field(default=0.5, ge=0)
    readiness_retries: int = Field(default=20, ge=1)
    readiness_delay_seconds: float = Field(default=3.0, ge=0)
    readiness_error_delay_seconds: float = Field(default=10.0, ge=0)

    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    verbose: bool = False

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure api_base_url doesn't have trailing slash."""
        return v.rstrip("/")

    @model_validator(mode="before")
    @classmethod
    def load_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Load values from environment variables if not explicitly set."""
        env_mapping = {
            "api_base_url": "EMUBENCH_API_URL",
            "state_root": "EMUBENCH_STATE_ROOT",
            "port": "PORT",
            "openai_api_key": "OPENAI_API_KEY",
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "google_api_key": "GOOGLE_API_KEY",
            "llm_base_url": "EMUBENCH_LLM_BASE_URL",
        }
        for field_name, env_var in env_mapping.items():
            if field_name not in data or data[field_name] is None:
                env_value = os.getenv(env_var)
                if env_value:
                    data[field_name] = env_value
        return data

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
        }.get(provider)

    def base_url_for(self, provider: str) -> Optional[str]:
        return self.llm_base_url or PROVIDER_BASE_URLS.get(provider)


def load_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict[str, Any]] = None,
) -> ServiceSettings:
    """
    Load service settings from file with CLI overrides.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults
    """
    config_data: dict[str, Any] = {}

    explicit = config_path is not None
    if config_path is None:
        config_path = Path("config.json")

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in {".yaml", ".yml"}:
                import yaml
                config_data = yaml.safe_load(f) or {}
            else:
                config_data = json.load(f)
    elif explicit:
        raise ConfigFileNotFoundError(str(config_path))

    try:
        config = ServiceSettings.model_validate(config_data)

        if cli_overrides:
            config_dict = config.model_dump()
            _apply_overrides(config_dict, cli_overrides)
            config = ServiceSettings.model_validate(config_dict)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc

    return config


def _apply_overrides(config_dict: dict[str, Any], overrides: dict[str, Any]) -> None:
    """Apply CLI overrides to config dictionary."""
    override_mapping = {
        "state_root": ("state_root", None),
        "api_base_url": ("api_base_url", None),
        "port": ("port", None),
        "verbose": ("verbose", None),
        "output_format": ("reporting", "output_format"),
        "reports_dir": ("reporting", "reports_folder"),
    }

    for key, value in overrides.items():
        if value is None:
            continue

        mapping = override_mapping.get(key)
        if mapping:
            section, field = mapping
            if field is None:
                config_dict[section] = value
            else:
                config_dict[section][field] = value
