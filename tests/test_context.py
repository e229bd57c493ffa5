import pytest
import yaml

from helm_optimize.config import PluginConfig
from helm_optimize.constants import CLUSTER_MAPPING_SECRET, FORWARDER_MARKER
from helm_optimize.context import ContextResolver
from helm_optimize.types import ContextError

KUBECONFIG = {
    "current-context": "dev",
    "contexts": [
        {"name": "dev", "context": {"cluster": "kind-dev", "user": "dev"}},
        {"name": "prod", "context": {"cluster": "eks-prod", "user": "prod"}},
    ],
}


def never_asked(local):
    raise AssertionError("remote cluster prompt should not be shown")


@pytest.fixture
def kubeconfig_kubectl(kubectl):
    kubectl.kubeconfig = KUBECONFIG
    return kubectl


def test_local_cluster_from_current_context(kubeconfig_kubectl, secrets):
    resolver = ContextResolver(PluginConfig(), kubeconfig_kubectl, secrets)
    assert resolver.local_cluster() == "kind-dev"


def test_kube_context_overrides_current_context(kubeconfig_kubectl, secrets):
    resolver = ContextResolver(PluginConfig(kube_context="prod"), kubeconfig_kubectl, secrets)
    assert resolver.local_cluster() == "eks-prod"


def test_kubeconfig_file_is_read_directly(tmp_path, kubectl, secrets):
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(KUBECONFIG), encoding="utf-8")
    resolver = ContextResolver(PluginConfig(kubeconfig=str(path)), kubectl, secrets)
    assert resolver.local_cluster() == "kind-dev"


def test_unknown_context_raises(kubeconfig_kubectl, secrets):
    resolver = ContextResolver(PluginConfig(kube_context="missing"), kubeconfig_kubectl, secrets)
    with pytest.raises(ContextError):
        resolver.local_cluster()


def test_missing_current_context_raises(kubectl, secrets):
    kubectl.kubeconfig = {"contexts": []}
    with pytest.raises(ContextError):
        ContextResolver(PluginConfig(), kubectl, secrets).local_cluster()


def test_unreadable_kubeconfig_file_raises(tmp_path, kubectl, secrets):
    config = PluginConfig(kubeconfig=str(tmp_path / "nope"))
    with pytest.raises(ContextError):
        ContextResolver(config, kubectl, secrets).local_cluster()


def test_remote_cluster_from_secret(kubeconfig_kubectl, secrets):
    secrets.write(CLUSTER_MAPPING_SECRET, {"remoteCluster": "prod-east"})
    resolver = ContextResolver(
        PluginConfig(namespace="shop"), kubeconfig_kubectl, secrets, ask_remote=never_asked
    )

    context = resolver.resolve()

    assert context.local_cluster == "kind-dev"
    assert context.remote_cluster == "prod-east"
    assert context.default_namespace == "shop"


def test_remote_cluster_from_forwarder_is_saved(kubeconfig_kubectl, secrets):
    kubeconfig_kubectl.configmaps = [{
        "metadata": {"name": "forwarder"},
        "data": {"config.properties": f"# {FORWARDER_MARKER}\ncluster_name=from-forwarder\n"},
    }]
    resolver = ContextResolver(PluginConfig(), kubeconfig_kubectl, secrets, ask_remote=never_asked)

    assert resolver.resolve().remote_cluster == "from-forwarder"
    assert secrets.read(CLUSTER_MAPPING_SECRET) == {"remoteCluster": "from-forwarder"}


def test_forwarder_prometheus_address_is_fallback(kubeconfig_kubectl, secrets):
    kubeconfig_kubectl.configmaps = [{
        "metadata": {"name": "forwarder"},
        "data": {"config.properties": f"# {FORWARDER_MARKER}\nprometheus_address=prom.svc\n"},
    }]
    resolver = ContextResolver(PluginConfig(), kubeconfig_kubectl, secrets, ask_remote=never_asked)
    assert resolver.resolve().remote_cluster == "prom.svc"


def test_remote_cluster_prompt_defaults_to_local(kubeconfig_kubectl, secrets):
    asked = []

    def ask(local):
        asked.append(local)
        return local

    context = ContextResolver(PluginConfig(), kubeconfig_kubectl, secrets, ask_remote=ask).resolve()

    assert asked == ["kind-dev"]
    assert context.remote_cluster == "kind-dev"
    assert context.default_namespace == "default"
    assert secrets.read(CLUSTER_MAPPING_SECRET) == {"remoteCluster": "kind-dev"}
