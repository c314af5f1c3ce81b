"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserConfig,
    GlobalConfig,
    PacingConfig,
    SelectorConfig,
    SiteConfig,
)

__all__ = [
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "GlobalConfig",
    "PacingConfig",
    "SelectorConfig",
    "SiteConfig",
]
