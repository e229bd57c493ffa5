"""Resolve the local cluster, remote cluster name and default namespace."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from .config import PluginConfig
from .constants import CLUSTER_MAPPING_SECRET, DEFAULT_NAMESPACE, REMOTE_CLUSTER_KEY
from .forwarder import load_forwarder_config
from .kubectl import KubectlClient
from .prompts import prompt_required
from .secrets import SecretStore
from .types import ContextError, KubectlError, ManifestParseError


@dataclass(frozen=True)
class ClusterContext:
    """Where the chart is deployed and how the insights repository names it."""

    local_cluster: str
    remote_cluster: str
    default_namespace: str = DEFAULT_NAMESPACE


def remote_cluster_prompt(local_cluster: str) -> str:
    return prompt_required("Please specify remote cluster", default=local_cluster)


class ContextResolver:
    """Works out the cluster context for one invocation."""

    def __init__(
        self,
        config: PluginConfig,
        kubectl: KubectlClient,
        secrets: SecretStore,
        ask_remote: Callable[[str], str] = remote_cluster_prompt,
    ):
        self.config = config
        self.kubectl = kubectl
        self.secrets = secrets
        self.ask_remote = ask_remote
        self.logger = logging.getLogger(__name__)

    def resolve(self) -> ClusterContext:
        """
        Resolve local and remote clusters.

        The remote cluster comes from the cluster-mapping secret, then the
        forwarder config map (``cluster_name``, then ``prometheus_address``),
        then an interactive prompt defaulting to the local cluster. A value
        that did not come from the secret is saved to it.

        Raises:
            ContextError: If the kubeconfig cannot be read or has no usable context
        """
        local_cluster = self.local_cluster()
        namespace = self.config.namespace or DEFAULT_NAMESPACE

        remote_cluster = self._stored_remote_cluster()
        if remote_cluster is None:
            remote_cluster = self._discovered_remote_cluster()
            if remote_cluster is None:
                remote_cluster = self.ask_remote(local_cluster)
            self.save_remote_cluster(remote_cluster)

        self.logger.debug(
            "Resolved local cluster %s, remote cluster %s, namespace %s",
            local_cluster, remote_cluster, namespace,
        )
        return ClusterContext(
            local_cluster=local_cluster,
            remote_cluster=remote_cluster,
            default_namespace=namespace,
        )

    def local_cluster(self) -> str:
        """Return the kubeconfig cluster behind the active context."""
        kubeconfig = self._load_kubeconfig()

        context_name = self.config.kube_context or kubeconfig.get("current-context")
        if not context_name:
            raise ContextError("no current context is set in the kubeconfig")

        for entry in kubeconfig.get("contexts") or []:
            if not isinstance(entry, dict) or entry.get("name") != context_name:
                continue
            context = entry.get("context")
            if isinstance(context, dict) and context.get("cluster"):
                return str(context["cluster"])

        raise ContextError(f"context {context_name!r} not found in the kubeconfig")

    def save_remote_cluster(self, remote_cluster: str) -> None:
        self.secrets.write(CLUSTER_MAPPING_SECRET, {REMOTE_CLUSTER_KEY: remote_cluster})

    def _load_kubeconfig(self) -> Dict[str, Any]:
        try:
            if self.config.kubeconfig:
                return self._read_kubeconfig_file(self.config.kubeconfig)
            return self.kubectl.config_view()
        except (KubectlError, ManifestParseError) as e:
            raise ContextError(f"could not read kubeconfig: {e}") from e

    @staticmethod
    def _read_kubeconfig_file(kubeconfig: str) -> Dict[str, Any]:
        # Only the first file of a KUBECONFIG list is read
        path = Path(kubeconfig.split(os.pathsep)[0]).expanduser()
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ManifestParseError(f"{path}: {e}", path=str(path)) from e
        if not isinstance(data, dict):
            raise ManifestParseError(f"{path}: kubeconfig is not a mapping", path=str(path))
        return data

    def _stored_remote_cluster(self) -> Optional[str]:
        bag = self.secrets.read(CLUSTER_MAPPING_SECRET) or {}
        return bag.get(REMOTE_CLUSTER_KEY) or None

    def _discovered_remote_cluster(self) -> Optional[str]:
        properties = load_forwarder_config(self.kubectl)
        if not properties:
            return None
        for key in ("cluster_name", "prometheus_address"):
            value = properties.get(key, "").strip()
            if value:
                return value
        return None
