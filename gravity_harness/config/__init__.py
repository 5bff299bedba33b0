"""
Gravity Harness Configuration

Loads all sections of a scenario config.toml.
Environment variables override TOML values.
"""

from .loader import (
    ChainConfig,
    HarnessConfig,
    LoggingConfig,
    ScenarioSectionConfig,
    TimingConfig,
    load_config,
)

__all__ = [
    "ChainConfig",
    "HarnessConfig",
    "LoggingConfig",
    "ScenarioSectionConfig",
    "TimingConfig",
    "load_config",
]
