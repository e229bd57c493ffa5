"""Insight repository adapters and their selection."""
from __future__ import annotations

from typing import Optional

from ..config import PluginConfig
from ..constants import ADAPTER_KEY, ADAPTER_LABELS, ADAPTER_SECRET, DEFAULT_ADAPTER, AdapterNames
from ..kubectl import KubectlClient
from ..prompts import prompt_choice
from ..secrets import SecretStore
from ..types import OptimizeError
from .analytics import AnalyticsAdapter
from .base import InsightAdapter
from .parameter_store import ParameterStoreAdapter

__all__ = [
    "AnalyticsAdapter",
    "InsightAdapter",
    "ParameterStoreAdapter",
    "active_adapter_name",
    "create_adapter",
    "select_adapter",
]


def active_adapter_name(secrets: SecretStore) -> str:
    """Return the adapter named in the adapter secret, or the default."""
    bag = secrets.read(ADAPTER_SECRET) or {}
    return bag.get(ADAPTER_KEY) or DEFAULT_ADAPTER


def create_adapter(
    name: str,
    secrets: SecretStore,
    kubectl: KubectlClient,
    config: Optional[PluginConfig] = None,
) -> InsightAdapter:
    """
    Construct an adapter by its stored name.

    Raises:
        OptimizeError: If the name is unknown
    """
    if name == AdapterNames.ANALYTICS:
        return AnalyticsAdapter(secrets, kubectl, config)
    if name == AdapterNames.PARAMETER_STORE:
        return ParameterStoreAdapter(secrets)
    raise OptimizeError(f"unknown adapter: {name}")


def select_adapter(secrets: SecretStore) -> str:
    """Let the user pick an adapter from a numbered menu; returns its name."""
    names = list(ADAPTER_LABELS)
    current = active_adapter_name(secrets)
    default = names.index(current) + 1 if current in names else 1
    index = prompt_choice(
        "Select the insight repository:",
        [ADAPTER_LABELS[name] for name in names],
        default=default,
    )
    return names[index]
