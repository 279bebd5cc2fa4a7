"""Configuration for Stakeboard."""

from stakeboard.config.betting import (
    BettingSettings,
    GroupConfig,
    PayoutStructure,
    PeriodType,
)
from stakeboard.config.settings import Settings, get_defaults, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "get_defaults",
    "BettingSettings",
    "GroupConfig",
    "PayoutStructure",
    "PeriodType",
]
