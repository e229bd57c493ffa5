"""kubectl interface with retry logic for read calls."""
from __future__ import annotations

import base64
import json
import logging
import random
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .constants import (
    DEFAULT_KUBECTL_BIN,
    DEFAULT_RETRY_BACKOFF_BASE,
    DEFAULT_RETRY_COUNT,
    MAX_RETRY_DELAY_SECONDS,
)
from .process import run_command
from .types import ContainerSpec, K8sObject, K8sObjectList, KubectlError, ManifestParseError, SecretBag


class KubectlClient:
    """kubectl client used for secrets, kubeconfig and live workload reads."""

    def __init__(
        self,
        kubectl_bin: str = DEFAULT_KUBECTL_BIN,
        context: Optional[str] = None,
        max_retries: int = DEFAULT_RETRY_COUNT,
        backoff_base: float = DEFAULT_RETRY_BACKOFF_BASE,
    ):
        self.kubectl_bin = kubectl_bin
        self.context = context
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.logger = logging.getLogger(__name__)
        self._base_cmd = self._build_base_command()

    def _build_base_command(self) -> List[str]:
        """Build the base kubectl command with global options."""
        cmd = [self.kubectl_bin]

        if self.context:
            cmd.extend(["--context", self.context])

        return cmd

    def check_connection(self) -> bool:
        """
        Check if kubectl can reach the cluster.

        Returns:
            True if ``kubectl cluster-info`` succeeds, False otherwise
        """
        try:
            self._run_command([*self._base_cmd, "cluster-info"], retries=0)
            return True
        except KubectlError as e:
            self.logger.debug("cluster-info failed: %s", e)
            return False

    def config_view(self) -> Dict[str, Any]:
        """
        Return the merged kubeconfig as a mapping.

        Raises:
            KubectlError: If kubectl fails
            ManifestParseError: If the output is not a YAML mapping
        """
        output = self._run_command([*self._base_cmd, "config", "view"])
        try:
            data = yaml.safe_load(output)
        except yaml.YAMLError as e:
            raise ManifestParseError(f"Failed to parse kubeconfig: {e}") from e
        if not isinstance(data, dict):
            raise ManifestParseError("kubeconfig is not a mapping")
        return data

    def get_secret_data(self, name: str) -> Optional[SecretBag]:
        """
        Read and decode the data of a secret.

        Returns:
            Decoded key/value pairs, or None when the secret does not exist
        """
        cmd = [*self._base_cmd, "get", "secret", name, "-o", "jsonpath={.data}"]
        try:
            output = self._run_command(cmd)
        except KubectlError as e:
            if "not found" in str(e).lower():
                return None
            raise

        if not output.strip():
            return {}

        try:
            encoded = json.loads(output)
        except json.JSONDecodeError as e:
            raise ManifestParseError(f"Failed to parse data of secret {name}: {e}") from e

        return {
            key: base64.b64decode(value).decode("utf-8")
            for key, value in encoded.items()
        }

    def create_secret(self, name: str, values: Mapping[str, str]) -> None:
        """Create a generic secret from literal values."""
        cmd = [*self._base_cmd, "create", "secret", "generic", name]
        cmd.extend(f"--from-literal={key}={value}" for key, value in sorted(values.items()))
        self._run_command(cmd, retries=0, log_command=False)

    def delete_secret(self, name: str) -> None:
        """Delete a secret; a missing secret is not an error."""
        cmd = [*self._base_cmd, "delete", "secret", name, "--ignore-not-found"]
        self._run_command(cmd, retries=0)

    def list_configmaps(self) -> K8sObjectList:
        """List config maps in all namespaces."""
        cmd = [*self._base_cmd, "get", "configmaps", "--all-namespaces", "-o", "json"]
        output = self._run_command(cmd)

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise KubectlError(f"Failed to parse kubectl output as JSON: {e}", command=cmd) from e

        items = data.get("items", []) if isinstance(data, dict) else []
        if not isinstance(items, list):
            raise KubectlError(f"Expected 'items' to be a list, got {type(items)}", command=cmd)
        return items

    def get_container_specs(
        self,
        kind: str,
        name: str,
        namespace: str,
        json_path: Sequence[str],
        cluster: Optional[str] = None,
    ) -> List[ContainerSpec]:
        """
        Read the running container list of a workload.

        Args:
            kind: Workload kind, e.g. ``Deployment``
            name: Workload name
            namespace: Workload namespace
            json_path: Field path from the object root to its containers
            cluster: Cluster name from the kubeconfig to query

        Returns:
            List of container specs (possibly empty)
        """
        jsonpath = "{." + ".".join(json_path) + "}"
        cmd = [*self._base_cmd, "get", kind, name, f"-o=jsonpath={jsonpath}"]
        if cluster:
            cmd.append(f"--cluster={cluster}")
        cmd.append(f"--namespace={namespace}")

        output = self._run_command(cmd)
        if not output.strip():
            return []

        try:
            containers = json.loads(output)
        except json.JSONDecodeError as e:
            raise KubectlError(f"Failed to parse container list: {e}", command=cmd) from e

        if not isinstance(containers, list):
            return []
        return [c for c in containers if isinstance(c, dict)]

    def _run_command(
        self,
        cmd: Sequence[str],
        retries: Optional[int] = None,
        log_command: bool = True,
    ) -> str:
        """
        Run a kubectl command with retry logic.

        Args:
            cmd: Command to execute
            retries: Number of retries (uses instance default if None)
            log_command: Whether the failing command may appear in errors

        Returns:
            Command stdout

        Raises:
            KubectlError: If command fails after all retries
        """
        if retries is None:
            retries = self.max_retries

        last_exception: Optional[KubectlError] = None
        reported_cmd = cmd if log_command else list(cmd[:4])

        for attempt in range(retries + 1):
            result = run_command(cmd)
            if result.ok:
                if attempt > 0:
                    self.logger.info("Command succeeded after %d retries", attempt)
                return result.stdout

            error_msg = result.stderr.strip() or result.stdout.strip() or f"exit status {result.returncode}"
            last_exception = KubectlError(
                f"kubectl failed: {error_msg}",
                exit_status=result.returncode,
                stderr=result.stderr,
                command=reported_cmd,
            )

            # Don't retry certain types of errors
            if result.returncode == 127 or self._is_non_retryable_error(error_msg):
                break

            if attempt < retries:
                delay = self._calculate_backoff_delay(attempt)
                self.logger.debug("Retrying in %.2f seconds (attempt %d/%d)", delay, attempt + 1, retries)
                time.sleep(delay)

        assert last_exception is not None
        self.logger.debug("Command failed: %s", last_exception)
        raise last_exception

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        base_delay = self.backoff_base ** attempt
        jitter = random.uniform(0.8, 1.2)
        return min(base_delay * jitter, MAX_RETRY_DELAY_SECONDS)

    def _is_non_retryable_error(self, error_msg: str) -> bool:
        """Check if an error should not be retried."""
        non_retryable_patterns = [
            "not found",
            "already exists",
            "forbidden",
            "unauthorized",
            "invalid",
            "malformed",
            "syntax error",
            "bad request",
        ]

        error_lower = error_msg.lower()
        return any(pattern in error_lower for pattern in non_retryable_patterns)


def get_resource_name(resource: K8sObject) -> str:
    """Extract name from a Kubernetes resource."""
    metadata = resource.get("metadata")
    if isinstance(metadata, dict):
        name = metadata.get("name")
        if isinstance(name, str):
            return name
    return ""
