"""Configuration module for the EmuBench agent."""
from config.models import (
    AgentConfig,
    BootConfig,
    Condition,
    ConditionInput,
    EmuTask,
    EmuTestConfig,
    MemoryWatch,
    ReportingConfig,
    ServiceSettings,
    load_config,
    parse_boot_config,
)

__all__ = [
    "AgentConfig",
    "BootConfig",
    "Condition",
    "ConditionInput",
    "EmuTask",
    "EmuTestConfig",
    "MemoryWatch",
    "ReportingConfig",
    "ServiceSettings",
    "load_config",
    "parse_boot_config",
]
