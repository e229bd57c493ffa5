import json

import pytest

from helm_optimize.adapters.parameter_store import (
    AwsCli,
    ParameterStoreAdapter,
    block_from_tags,
    parameter_key,
    parse_resource_value,
)
from helm_optimize.constants import ADAPTER_SECRET, CURRENT_VALUE_TAGS
from helm_optimize.process import CommandResult
from helm_optimize.types import (
    Approval,
    AwsCliError,
    ContainerIdentity,
    CredError,
    InsightNotFoundError,
    InsightUnavailableError,
    InvalidSpecError,
    ResourceBlock,
)

WEB_KEY = "/optimize/prod-east/shop/Deployment/web/web/resourceSpec"
STORED_SPEC = {"limits": {"cpu": "250", "memory": "500"}, "requests": {"cpu": "100", "memory": "200"}}
TAGS = {
    "currentCpuLimit": "400",
    "currentMemLimit": "800",
    "currentCpuRequest": "200",
    "currentMemRequest": "400",
    "recommendedCpuLimit": "250",
    "recommendedMemLimit": "500",
    "recommendedCpuRequest": "100",
    "recommendedMemRequest": "200",
}


def option(argv, flag):
    return argv[argv.index(flag) + 1]


class FakeAws:
    """Answers aws CLI invocations from an in-memory parameter table."""

    def __init__(self):
        self.parameters = {}
        self.identity_ok = True
        self.commands = []

    def add(self, name, value, labels=(), tags=None, parameter_type="String"):
        self.parameters[name] = {
            "type": parameter_type,
            "versions": [{"Version": 1, "Value": json.dumps(value), "Labels": list(labels)}],
            "tags": dict(tags or {}),
        }

    def latest(self, name):
        return self.parameters[name]["versions"][-1]

    def __call__(self, argv, error_cls=AwsCliError, input_text=None):
        self.commands.append(list(argv))
        service, action = argv[1], argv[2]
        if (service, action) == ("sts", "get-caller-identity"):
            if not self.identity_ok:
                raise error_cls("aws failed", exit_status=255, stderr="The config profile could not be found")
            return self._ok({"Account": "123456789012"})

        name = option(argv, "--name") if "--name" in argv else option(argv, "--resource-id")
        if name not in self.parameters:
            raise error_cls(
                "aws failed",
                exit_status=254,
                stderr="An error occurred (ParameterNotFound) when calling the GetParameter operation",
            )
        parameter = self.parameters[name]

        if action == "get-parameter":
            latest = self.latest(name)
            return self._ok({"Parameter": {
                "Name": name, "Type": parameter["type"], "Value": latest["Value"], "Version": latest["Version"],
            }})
        if action == "get-parameter-history":
            return self._ok({"Parameters": parameter["versions"]})
        if action == "list-tags-for-resource":
            return self._ok({"TagList": [{"Key": k, "Value": v} for k, v in parameter["tags"].items()]})
        if action == "put-parameter":
            version = self.latest(name)["Version"] + 1
            parameter["versions"].append({"Version": version, "Value": option(argv, "--value"), "Labels": []})
            return self._ok({"Version": version, "Tier": "Standard"})
        if action == "label-parameter-version":
            version = int(option(argv, "--parameter-version"))
            label = option(argv, "--labels")
            for entry in parameter["versions"]:
                if label in entry["Labels"]:
                    entry["Labels"].remove(label)
                if entry["Version"] == version:
                    entry["Labels"].append(label)
            return self._ok({"InvalidLabels": []})
        raise AssertionError(f"unexpected aws command {argv}")

    @staticmethod
    def _ok(data):
        return CommandResult(stdout=json.dumps(data), stderr="", returncode=0)


@pytest.fixture
def aws(monkeypatch):
    fake = FakeAws()
    monkeypatch.setattr("helm_optimize.adapters.parameter_store.run_checked", fake)
    return fake


@pytest.fixture
def adapter(aws, secrets):
    adapter = ParameterStoreAdapter(secrets)
    adapter.prefix = "/optimize"
    adapter.cli = AwsCli("default", "us-east-1")
    return adapter


def test_parameter_key_layout():
    identity = ContainerIdentity("prod-east", "shop", "Deployment", "web", "web")
    assert parameter_key("/optimize", identity) == WEB_KEY
    assert parameter_key("", identity) == "/prod-east/shop/Deployment/web/web/resourceSpec"


def test_parse_resource_value():
    assert parse_resource_value(json.dumps(STORED_SPEC)) == ResourceBlock(250, 500, 100, 200)
    for bad in ("not json", "[]", json.dumps({"limits": {"cpu": "0", "memory": "1"},
                                               "requests": {"cpu": "1", "memory": "1"}})):
        with pytest.raises(InvalidSpecError):
            parse_resource_value(bad)


def test_block_from_tags():
    assert block_from_tags(TAGS, CURRENT_VALUE_TAGS) == ResourceBlock(400, 800, 200, 400)
    with pytest.raises(InvalidSpecError):
        block_from_tags({}, CURRENT_VALUE_TAGS)


def test_approved_version_is_approved(adapter, aws):
    aws.add(WEB_KEY, STORED_SPEC, labels=["Approved"])
    block, approval = adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")
    assert block == ResourceBlock(250, 500, 100, 200)
    assert approval is Approval.APPROVED


def test_unlabelled_version_is_not_approved(adapter, aws):
    aws.add(WEB_KEY, STORED_SPEC)
    _, approval = adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")
    assert approval is Approval.NOT_APPROVED


def test_aws_commands_carry_profile_region_and_output(adapter, aws):
    aws.add(WEB_KEY, STORED_SPEC)
    adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")
    get = aws.commands[0]
    assert get[:5] == ["aws", "ssm", "get-parameter", "--name", WEB_KEY]
    assert "--with-decryption" in get
    assert option(get, "--profile") == "default"
    assert option(get, "--output") == "json"
    assert option(get, "--region") == "us-east-1"


def test_missing_parameter(adapter):
    with pytest.raises(InsightUnavailableError):
        adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")
    with pytest.raises(InsightNotFoundError):
        adapter.get_approval("prod-east", "shop", "Deployment", "web", "web")


def test_invalid_value_is_unavailable(adapter, aws):
    aws.add(WEB_KEY, {"limits": {"cpu": "abc"}})
    with pytest.raises(InsightUnavailableError):
        adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")


def test_approve_writes_recommendation_and_labels_it(adapter, aws):
    aws.add(WEB_KEY, {"limits": {"cpu": "400", "memory": "800"}, "requests": {"cpu": "200", "memory": "400"}},
            tags=TAGS, parameter_type="SecureString")

    adapter.set_approval(True, "prod-east", "shop", "Deployment", "web", "web")

    latest = aws.latest(WEB_KEY)
    assert latest["Version"] == 2
    assert json.loads(latest["Value"]) == STORED_SPEC
    assert latest["Labels"] == ["Approved"]
    put = next(c for c in aws.commands if c[2] == "put-parameter")
    assert option(put, "--type") == "SecureString"
    assert "--overwrite" in put
    assert adapter.get_approval("prod-east", "shop", "Deployment", "web", "web") is Approval.APPROVED


def test_unapprove_writes_current_values(adapter, aws):
    aws.add(WEB_KEY, STORED_SPEC, labels=["Approved"], tags=TAGS)

    adapter.set_approval(False, "prod-east", "shop", "Deployment", "web", "web")

    latest = aws.latest(WEB_KEY)
    assert json.loads(latest["Value"])["limits"] == {"cpu": "400", "memory": "800"}
    assert latest["Labels"] == ["NotApproved"]
    block, approval = adapter.get_insight("prod-east", "shop", "Deployment", "web", "web")
    assert block == ResourceBlock(400, 800, 200, 400)
    assert approval is Approval.NOT_APPROVED


def test_sts_call_has_no_region(aws):
    AwsCli("team", "eu-west-1").caller_identity()
    assert aws.commands[-1] == ["aws", "sts", "get-caller-identity", "--profile", "team", "--output", "json"]


@pytest.fixture
def aws_installed(monkeypatch):
    monkeypatch.setattr("helm_optimize.adapters.parameter_store.shutil.which", lambda name: "/usr/bin/aws")


def answer_prompts(monkeypatch, *values):
    replies = iter(values)
    monkeypatch.setattr(
        "helm_optimize.adapters.parameter_store.prompt_optional", lambda prompt, **kw: next(replies)
    )


def test_initialize_requires_aws_binary(monkeypatch, secrets):
    monkeypatch.setattr("helm_optimize.adapters.parameter_store.shutil.which", lambda name: None)
    with pytest.raises(AwsCliError) as exc_info:
        ParameterStoreAdapter(secrets).initialize()
    assert exc_info.value.exit_status == 127


def test_initialize_uses_stored_settings(aws, aws_installed, secrets, monkeypatch):
    secrets.write(ADAPTER_SECRET, {
        "adapter": "parameter-store", "prefix": "/optimize", "profile": "team", "region": "eu-west-1",
    })
    answer_prompts(monkeypatch)

    adapter = ParameterStoreAdapter(secrets)
    adapter.initialize()

    assert adapter.prefix == "/optimize"
    assert adapter.cli.profile == "team"
    assert adapter.cli.region == "eu-west-1"


def test_initialize_prompts_and_stores(aws, aws_installed, secrets, monkeypatch):
    answer_prompts(monkeypatch, "", "default", "us-west-2")

    adapter = ParameterStoreAdapter(secrets)
    adapter.initialize()

    assert adapter.prefix == ""
    assert secrets.read(ADAPTER_SECRET) == {
        "adapter": "parameter-store", "prefix": "", "profile": "default", "region": "us-west-2",
    }


def test_invalid_profile_is_forgotten(aws, aws_installed, secrets, monkeypatch):
    secrets.write(ADAPTER_SECRET, {
        "adapter": "parameter-store", "prefix": "/optimize", "profile": "gone", "region": "us-east-1",
    })
    aws.identity_ok = False
    answer_prompts(monkeypatch, "/optimize", "gone", "us-east-1")

    with pytest.raises(CredError):
        ParameterStoreAdapter(secrets).initialize()

    assert secrets.read(ADAPTER_SECRET) == {"adapter": "parameter-store"}


def test_non_ascii_digits_are_invalid_spec():
    value = json.dumps({"limits": {"cpu": "²", "memory": "1"}, "requests": {"cpu": "1", "memory": "1"}})
    with pytest.raises(InvalidSpecError):
        parse_resource_value(value)
