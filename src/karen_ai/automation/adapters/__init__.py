"""Adapters de sites de fornecedores."""

from karen_ai.automation.adapters.base import SiteAdapter, screenshot_url
from karen_ai.automation.adapters.paddy_power import PaddyPowerAdapter
from karen_ai.automation.adapters.registry import (
    AdapterRegistry,
    build_adapter_registry,
    normalize_adapter_name,
)

__all__ = [
    "AdapterRegistry",
    "PaddyPowerAdapter",
    "SiteAdapter",
    "build_adapter_registry",
    "normalize_adapter_name",
    "screenshot_url",
]
