"""Configuration management for the optimize plugin."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import (
    ANALYTICS_API_ROOT,
    DEFAULT_HELM_BIN,
    DEFAULT_KUBECTL_BIN,
    DEFAULT_NAMESPACE,
    DEFAULT_RETRY_BACKOFF_BASE,
    DEFAULT_RETRY_COUNT,
    SUPPORTED_AWS_REGIONS,
)

_TRUTHY = ("1", "true", "yes", "on")

# Parameter-store prefix rules
_RESERVED_PREFIX = re.compile(r"^/?(aws|ssm)", re.IGNORECASE)
_VALID_PREFIX = re.compile(r"^(/[A-Za-z0-9_.\-]+)*$")


@dataclass
class PluginConfig:
    """Runtime settings for one plugin invocation."""

    # Helm plugin environment
    helm_bin: str = DEFAULT_HELM_BIN
    plugin_dir: Optional[str] = None
    namespace: str = DEFAULT_NAMESPACE
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None
    debug: bool = False

    # kubectl settings
    kubectl_bin: str = DEFAULT_KUBECTL_BIN
    max_retries: int = DEFAULT_RETRY_COUNT
    backoff_base: float = DEFAULT_RETRY_BACKOFF_BASE

    # Analytics service
    analytics_api_root: str = ANALYTICS_API_ROOT
    analytics_verify_tls: bool = True

    config_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PluginConfig":
        """Build settings from the variables Helm exports to plugins."""
        env = os.environ if environ is None else environ
        return cls(
            helm_bin=env.get("HELM_BIN") or DEFAULT_HELM_BIN,
            plugin_dir=env.get("HELM_PLUGIN_DIR") or None,
            namespace=env.get("HELM_NAMESPACE") or DEFAULT_NAMESPACE,
            kube_context=env.get("HELM_KUBECONTEXT") or None,
            kubeconfig=env.get("KUBECONFIG") or None,
            debug=env.get("HELM_DEBUG", "").strip().lower() in _TRUTHY,
            kubectl_bin=env.get("HELM_OPTIMIZE_KUBECTL") or DEFAULT_KUBECTL_BIN,
            config_file=env.get("HELM_OPTIMIZE_CONFIG") or None,
        )


@dataclass
class GlobalConfig:
    """Locations searched for a YAML settings file."""

    config_file_paths: List[str] = field(default_factory=lambda: [
        "~/.config/helm-optimize/config.yaml",
        "./.helm-optimize.yaml",
    ])


class ConfigLoader:
    """Loads file settings on top of the environment."""

    def __init__(self, global_config: Optional[GlobalConfig] = None):
        self.global_config = global_config or GlobalConfig()
        self.logger = logging.getLogger(__name__)

    def load_config(self, config: PluginConfig) -> PluginConfig:
        """
        Merge the first settings file found into ``config``.

        ``config.config_file`` is tried alone when set; otherwise the
        default search paths are tried in order.

        Returns:
            The same config object, updated in place
        """
        data = self._load_from_file(config.config_file)
        if data:
            self._merge_config_data(config, data)
        return config

    def _load_from_file(self, config_file: Optional[str]) -> Optional[Dict[str, Any]]:
        paths_to_try = [config_file] if config_file else list(self.global_config.config_file_paths)

        for path_str in paths_to_try:
            path = Path(path_str).expanduser()
            if path.is_file():
                return self._parse_config_file(path)

        return None

    def _parse_config_file(self, path: Path) -> Dict[str, Any]:
        """Parse a YAML configuration file."""
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self.logger.error("Failed to parse config file %s: %s", path, e)
            return {}

        if not isinstance(data, dict):
            self.logger.warning("Config file %s does not contain a dictionary", path)
            return {}

        self.logger.debug("Loaded configuration from: %s", path)
        return data

    def _merge_config_data(self, config: PluginConfig, data: Dict[str, Any]) -> None:
        if "kubectl_bin" in data and config.kubectl_bin == DEFAULT_KUBECTL_BIN:
            config.kubectl_bin = str(data["kubectl_bin"])
        if "max_retries" in data:
            config.max_retries = int(data["max_retries"])
        if "backoff_base" in data:
            config.backoff_base = float(data["backoff_base"])

        analytics = data.get("analytics")
        if isinstance(analytics, dict):
            if "api_root" in analytics:
                config.analytics_api_root = str(analytics["api_root"])
            if "verify_tls" in analytics:
                config.analytics_verify_tls = bool(analytics["verify_tls"])

        self.logger.debug("Merged configuration data successfully")


class ConfigValidator:
    """Validates plugin settings and user-entered backend parameters."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_plugin_config(self, config: PluginConfig) -> List[str]:
        """
        Validate numeric and path settings.

        Returns:
            List of validation error messages
        """
        errors = []

        if config.max_retries < 0:
            errors.append("max_retries cannot be negative")

        if config.backoff_base <= 1.0:
            errors.append("backoff_base must be greater than 1.0")

        if not config.analytics_api_root.startswith("/"):
            errors.append("analytics.api_root must start with '/'")

        if config.kubeconfig:
            for kubeconfig in config.kubeconfig.split(os.pathsep):
                if kubeconfig and not Path(kubeconfig).expanduser().exists():
                    errors.append(f"Kubeconfig file not found: {kubeconfig}")

        if errors:
            self.logger.warning("Configuration validation failed: %s", "; ".join(errors))

        return errors

    @staticmethod
    def validate_prefix(prefix: str) -> Optional[str]:
        """Return an error message for an unusable parameter-store prefix."""
        if _RESERVED_PREFIX.match(prefix):
            return "Prefix cannot begin with 'aws' or 'ssm' (case-insensitive)"
        if not _VALID_PREFIX.match(prefix):
            return (
                "Prefix must be a sequence of '/'-separated segments made of "
                "letters, digits, '_', '.' or '-'"
            )
        return None

    @staticmethod
    def validate_region(region: str) -> Optional[str]:
        """Return an error message for an unsupported region."""
        if region not in SUPPORTED_AWS_REGIONS:
            return f"Unsupported region: {region}"
        return None
