from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import yaml

from helm_optimize.context import ClusterContext
from helm_optimize.secrets import SecretStore
from helm_optimize.types import (
    Approval,
    InsightNotFoundError,
    InsightUnavailableError,
    KubectlError,
    ResourceBlock,
)


class FakeKubectl:
    """In-memory stand-in for KubectlClient."""

    def __init__(self):
        self.kubectl_bin = "kubectl"
        self.secrets: Dict[str, Dict[str, str]] = {}
        self.configmaps: List[dict] = []
        self.kubeconfig: dict = {}
        self.containers: Dict[Tuple[str, str, str], List[dict]] = {}
        self.calls: List[tuple] = []
        self.connected = True

    def check_connection(self) -> bool:
        return self.connected

    def config_view(self) -> dict:
        return self.kubeconfig

    def get_secret_data(self, name: str) -> Optional[Dict[str, str]]:
        self.calls.append(("get_secret", name))
        data = self.secrets.get(name)
        return dict(data) if data is not None else None

    def create_secret(self, name: str, values: Dict[str, str]) -> None:
        self.calls.append(("create_secret", name))
        if name in self.secrets:
            raise KubectlError(f'secrets "{name}" already exists')
        self.secrets[name] = dict(values)

    def delete_secret(self, name: str) -> None:
        self.calls.append(("delete_secret", name))
        self.secrets.pop(name, None)

    def list_configmaps(self) -> List[dict]:
        return self.configmaps

    def get_container_specs(self, kind, name, namespace, json_path, cluster=None):
        self.calls.append(("get_container_specs", kind, name, namespace, cluster))
        key = (kind, name, namespace)
        if key not in self.containers:
            raise KubectlError(f'{kind.lower()}s "{name}" not found')
        return self.containers[key]


class FakeAdapter:
    """Insight source with canned answers keyed by (namespace, kind, name, container)."""

    name = "fake"

    def __init__(self):
        self.insights: Dict[Tuple[str, str, str, str], Tuple[ResourceBlock, Approval]] = {}
        self.approvals: Dict[Tuple[str, str, str, str], Approval] = {}
        self.lookups: List[tuple] = []
        self.set_calls: List[tuple] = []

    def initialize(self, reconfigure: bool = False) -> None:
        pass

    def get_insight(self, cluster, namespace, kind, name, container):
        self.lookups.append((cluster, namespace, kind, name, container))
        key = (namespace, kind, name, container)
        if key not in self.insights:
            raise InsightUnavailableError(f"no insight for {key}")
        return self.insights[key]

    def get_approval(self, cluster, namespace, kind, name, container):
        key = (namespace, kind, name, container)
        if key not in self.approvals:
            raise InsightNotFoundError(f"no record for {key}")
        return self.approvals[key]

    def set_approval(self, approved, cluster, namespace, kind, name, container):
        self.set_calls.append((approved, cluster, namespace, kind, name, container))
        self.approvals[(namespace, kind, name, container)] = Approval.from_bool(approved)


@pytest.fixture
def kubectl() -> FakeKubectl:
    return FakeKubectl()


@pytest.fixture
def secrets(kubectl) -> SecretStore:
    return SecretStore(kubectl)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def cluster_context() -> ClusterContext:
    return ClusterContext(local_cluster="kind-local", remote_cluster="prod-east", default_namespace="default")


def deployment(name: str, containers: List[dict], namespace: Optional[str] = None) -> dict:
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": metadata,
        "spec": {
            "replicas": 1,
            "template": {
                "metadata": {"labels": {"app": name}},
                "spec": {"containers": containers},
            },
        },
    }


def cronjob(name: str, containers: List[dict]) -> dict:
    return {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": {"name": name},
        "spec": {
            "schedule": "*/5 * * * *",
            "jobTemplate": {
                "spec": {
                    "template": {
                        "spec": {"containers": containers, "restartPolicy": "OnFailure"},
                    },
                },
            },
        },
    }


def write_chart(root: Path, name: str, templates: Dict[str, List[dict]]) -> Path:
    """Create a chart directory whose templates hold already-rendered documents."""
    chart_dir = root / name
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text(
        yaml.safe_dump({"apiVersion": "v2", "name": name, "version": "0.1.0"}),
        encoding="utf-8",
    )
    for filename, documents in templates.items():
        path = chart_dir / "templates" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump_all(documents, sort_keys=False), encoding="utf-8")
    return chart_dir
