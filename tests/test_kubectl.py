import base64
import json
from unittest.mock import patch

import pytest

from helm_optimize.kubectl import KubectlClient, get_resource_name
from helm_optimize.process import CommandResult
from helm_optimize.types import KubectlError


def ok(stdout=""):
    return CommandResult(stdout=stdout, stderr="", returncode=0)


def fail(stderr, returncode=1):
    return CommandResult(stdout="", stderr=stderr, returncode=returncode)


def encode(value):
    return base64.b64encode(value.encode()).decode()


def test_base_command_includes_context():
    client = KubectlClient(kubectl_bin="/opt/kubectl", context="dev")
    with patch("helm_optimize.kubectl.run_command", return_value=ok()) as run:
        client.check_connection()
    assert run.call_args[0][0] == ["/opt/kubectl", "--context", "dev", "cluster-info"]


def test_get_secret_data_decodes_values():
    client = KubectlClient()
    data = json.dumps({"adapter": encode("analytics"), "analyticsUser": encode("ops")})
    with patch("helm_optimize.kubectl.run_command", return_value=ok(data)):
        assert client.get_secret_data("helm-optimize-plugin") == {
            "adapter": "analytics",
            "analyticsUser": "ops",
        }


def test_get_secret_data_returns_none_when_missing():
    client = KubectlClient()
    missing = fail('Error from server (NotFound): secrets "helm-optimize-plugin" not found')
    with patch("helm_optimize.kubectl.run_command", return_value=missing) as run:
        assert client.get_secret_data("helm-optimize-plugin") is None
    # not found is not retried
    assert run.call_count == 1


def test_create_secret_passes_literals():
    client = KubectlClient()
    with patch("helm_optimize.kubectl.run_command", return_value=ok()) as run:
        client.create_secret("s", {"b": "2", "a": "1"})
    assert run.call_args[0][0] == [
        "kubectl", "create", "secret", "generic", "s", "--from-literal=a=1", "--from-literal=b=2",
    ]


def test_create_secret_error_does_not_leak_values():
    client = KubectlClient()
    with patch("helm_optimize.kubectl.run_command", return_value=fail("boom")):
        with pytest.raises(KubectlError) as exc_info:
            client.create_secret("s", {"analyticsPass": "hunter2"})
    assert "hunter2" not in " ".join(exc_info.value.command)


def test_read_calls_retry_transient_failures():
    client = KubectlClient(max_retries=2)
    results = [fail("connection refused"), fail("connection refused"), ok('{"items": []}')]
    with patch("helm_optimize.kubectl.run_command", side_effect=results) as run, \
            patch("helm_optimize.kubectl.time.sleep") as sleep:
        assert client.list_configmaps() == []
    assert run.call_count == 3
    assert sleep.call_count == 2


def test_read_calls_give_up_after_max_retries():
    client = KubectlClient(max_retries=1)
    with patch("helm_optimize.kubectl.run_command", return_value=fail("timeout")) as run, \
            patch("helm_optimize.kubectl.time.sleep"):
        with pytest.raises(KubectlError):
            client.list_configmaps()
    assert run.call_count == 2


def test_forbidden_is_not_retried():
    client = KubectlClient(max_retries=3)
    with patch("helm_optimize.kubectl.run_command", return_value=fail("Forbidden")) as run:
        with pytest.raises(KubectlError):
            client.list_configmaps()
    assert run.call_count == 1


def test_get_container_specs_builds_jsonpath_query():
    client = KubectlClient()
    containers = [{"name": "api", "resources": {"limits": {"cpu": "1"}}}]
    with patch("helm_optimize.kubectl.run_command", return_value=ok(json.dumps(containers))) as run:
        specs = client.get_container_specs(
            "Deployment", "web", "shop", ("spec", "template", "spec", "containers"), cluster="kind-local"
        )
    assert specs == containers
    assert run.call_args[0][0] == [
        "kubectl", "get", "Deployment", "web",
        "-o=jsonpath={.spec.template.spec.containers}",
        "--cluster=kind-local",
        "--namespace=shop",
    ]


def test_config_view_parses_yaml():
    client = KubectlClient()
    with patch("helm_optimize.kubectl.run_command", return_value=ok("current-context: dev\n")):
        assert client.config_view() == {"current-context": "dev"}


def test_backoff_delay_is_capped():
    client = KubectlClient(backoff_base=10.0)
    assert client._calculate_backoff_delay(5) <= 60.0


def test_get_resource_name():
    assert get_resource_name({"metadata": {"name": "x"}}) == "x"
    assert get_resource_name({}) == ""
