"""Insight repository backed by a cloud parameter store through the aws CLI."""
from __future__ import annotations

import json
import logging
import shutil
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import ConfigValidator
from ..constants import (
    APPROVED_LABEL,
    CURRENT_VALUE_TAGS,
    DEFAULT_AWS_BIN,
    DEFAULT_AWS_PROFILE,
    DEFAULT_AWS_REGION,
    NOT_APPROVED_LABEL,
    PARAMETER_KEY_SUFFIX,
    RECOMMENDED_VALUE_TAGS,
    AdapterNames,
)
from ..process import run_checked
from ..prompts import prompt_optional
from ..secrets import SecretStore
from ..types import (
    Approval,
    AwsCliError,
    ContainerIdentity,
    CredError,
    InsightNotFoundError,
    InvalidSpecError,
    ResourceBlock,
)
from .base import InsightAdapter

PREFIX_KEY = "prefix"
PROFILE_KEY = "profile"
REGION_KEY = "region"

_NOT_FOUND_MARKER = "ParameterNotFound"


def parameter_key(prefix: str, identity: ContainerIdentity) -> str:
    """Build ``<prefix>/<cluster>/<ns>/<kind>/<name>/<container>/resourceSpec``."""
    return "/".join([
        prefix,
        identity.cluster,
        identity.namespace,
        identity.kind,
        identity.name,
        identity.container,
        PARAMETER_KEY_SUFFIX,
    ])


def parse_resource_value(value: str) -> ResourceBlock:
    """
    Parse the JSON value of a resource parameter.

    Raises:
        InvalidSpecError: If the value is not JSON or any number is not a positive integer
    """
    try:
        spec = json.loads(value)
    except (TypeError, ValueError) as e:
        raise InvalidSpecError(f"resource spec is not valid JSON: {e}") from e
    if not isinstance(spec, dict):
        raise InvalidSpecError("resource spec is not a JSON object")
    return ResourceBlock.from_stored(spec)


def block_from_tags(tags: Dict[str, str], names: Sequence[str]) -> ResourceBlock:
    """Build a block from the four tags named in ``names``."""
    return ResourceBlock.from_values(*(tags.get(name) for name in names))


class AwsCli:
    """Runs ``aws`` commands for one profile and region and decodes their JSON."""

    def __init__(self, profile: str, region: str, aws_bin: str = DEFAULT_AWS_BIN):
        self.profile = profile
        self.region = region
        self.aws_bin = aws_bin
        self.logger = logging.getLogger(__name__)

    def caller_identity(self) -> Dict[str, Any]:
        return self._run(["sts", "get-caller-identity"], region=False)

    def get_parameter(self, name: str) -> Dict[str, Any]:
        data = self._run(["ssm", "get-parameter", "--name", name, "--with-decryption"])
        parameter = data.get("Parameter")
        if not isinstance(parameter, dict):
            raise AwsCliError(f"unexpected get-parameter output for {name}")
        return parameter

    def parameter_history(self, name: str) -> List[Dict[str, Any]]:
        data = self._run(["ssm", "get-parameter-history", "--name", name])
        history = data.get("Parameters") or []
        return [entry for entry in history if isinstance(entry, dict)]

    def list_tags(self, name: str) -> Dict[str, str]:
        data = self._run([
            "ssm", "list-tags-for-resource",
            "--resource-type", "Parameter",
            "--resource-id", name,
        ])
        return {
            str(tag.get("Key")): str(tag.get("Value"))
            for tag in data.get("TagList") or []
            if isinstance(tag, dict)
        }

    def put_parameter(self, name: str, value: str, parameter_type: str) -> int:
        """Write a new version of a parameter and return its version number."""
        data = self._run([
            "ssm", "put-parameter",
            "--name", name,
            "--value", value,
            "--type", parameter_type,
            "--overwrite",
        ])
        try:
            return int(data["Version"])
        except (KeyError, TypeError, ValueError) as e:
            raise AwsCliError(f"put-parameter returned no version for {name}") from e

    def label_version(self, name: str, version: int, label: str) -> None:
        self._run([
            "ssm", "label-parameter-version",
            "--name", name,
            "--parameter-version", str(version),
            "--labels", label,
        ])

    def _run(self, args: Sequence[str], region: bool = True) -> Dict[str, Any]:
        cmd = [self.aws_bin, *args, "--profile", self.profile, "--output", "json"]
        if region:
            cmd.extend(["--region", self.region])
        try:
            output = run_checked(cmd, error_cls=AwsCliError).stdout
        except AwsCliError as e:
            if _NOT_FOUND_MARKER in e.stderr:
                raise InsightNotFoundError(f"parameter not found: {e.stderr.strip()}") from e
            raise

        if not output.strip():
            return {}
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise AwsCliError(f"Failed to parse aws output as JSON: {e}", command=cmd) from e
        return data if isinstance(data, dict) else {}


class ParameterStoreAdapter(InsightAdapter):
    """Insights stored as one JSON parameter per container."""

    name = AdapterNames.PARAMETER_STORE
    credential_keys = (PREFIX_KEY, PROFILE_KEY, REGION_KEY)

    def __init__(self, secrets: SecretStore, aws_bin: str = DEFAULT_AWS_BIN):
        super().__init__(secrets)
        self.aws_bin = aws_bin
        self.prefix = ""
        self.cli: Optional[AwsCli] = None

    def initialize(self, reconfigure: bool = False) -> None:
        if shutil.which(self.aws_bin) is None:
            raise AwsCliError(
                f"{self.aws_bin} is not available; install the aws CLI before trying again",
                exit_status=127,
            )

        stored = None if reconfigure else self.stored_settings()
        if stored and self._usable(stored):
            cli = AwsCli(stored[PROFILE_KEY], stored[REGION_KEY], self.aws_bin)
            try:
                cli.caller_identity()
            except AwsCliError as e:
                self.logger.warning("Stored aws profile %s is not usable: %s", cli.profile, e)
            else:
                self.prefix = stored.get(PREFIX_KEY, "")
                self.cli = cli
                return

        prefix = prompt_optional(
            "What is your preferred parameter key prefix, e.g. /optimize",
            validator=ConfigValidator.validate_prefix,
        )
        profile = prompt_optional(
            "What is your preferred AWS profile", default=DEFAULT_AWS_PROFILE
        )
        region = prompt_optional(
            "What is your preferred AWS region",
            default=DEFAULT_AWS_REGION,
            validator=ConfigValidator.validate_region,
        )

        cli = AwsCli(profile, region, self.aws_bin)
        try:
            cli.caller_identity()
        except AwsCliError as e:
            self.forget_settings()
            raise CredError(f"aws profile {profile} could not be validated: {e}") from e

        self.store_settings({PREFIX_KEY: prefix, PROFILE_KEY: profile, REGION_KEY: region})
        self.prefix = prefix
        self.cli = cli

    @staticmethod
    def _usable(stored: Dict[str, str]) -> bool:
        if not stored.get(PROFILE_KEY) or not stored.get(REGION_KEY):
            return False
        return (
            ConfigValidator.validate_prefix(stored.get(PREFIX_KEY, "")) is None
            and ConfigValidator.validate_region(stored[REGION_KEY]) is None
        )

    def _require_cli(self) -> AwsCli:
        if self.cli is None:
            raise CredError("parameter-store adapter is not initialized")
        return self.cli

    def _key(self, cluster: str, namespace: str, kind: str, name: str, container: str) -> str:
        return parameter_key(self.prefix, ContainerIdentity(cluster, namespace, kind, name, container))

    def _version_approval(self, key: str, version: Any) -> Approval:
        for entry in self._require_cli().parameter_history(key):
            if entry.get("Version") == version:
                labels = entry.get("Labels") or []
                return Approval.from_bool(APPROVED_LABEL in labels)
        return Approval.NOT_APPROVED

    def _fetch_insight(self, identity: ContainerIdentity) -> Tuple[ResourceBlock, Approval]:
        key = parameter_key(self.prefix, identity)
        parameter = self._require_cli().get_parameter(key)
        block = parse_resource_value(parameter.get("Value"))
        return block, self._version_approval(key, parameter.get("Version"))

    def get_approval(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Approval:
        key = self._key(cluster, namespace, kind, name, container)
        parameter = self._require_cli().get_parameter(key)
        return self._version_approval(key, parameter.get("Version"))

    def set_approval(
        self, approved: bool, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> None:
        """
        Write the recommended (approved) or current (unapproved) block from the
        parameter's tags as a new version and label that version.
        """
        cli = self._require_cli()
        key = self._key(cluster, namespace, kind, name, container)

        parameter = cli.get_parameter(key)
        tags = cli.list_tags(key)
        block = block_from_tags(tags, RECOMMENDED_VALUE_TAGS if approved else CURRENT_VALUE_TAGS)

        version = cli.put_parameter(
            key,
            json.dumps(block.to_stored()),
            str(parameter.get("Type") or "String"),
        )
        cli.label_version(key, version, APPROVED_LABEL if approved else NOT_APPROVED_LABEL)
        self.logger.debug("Labelled %s version %d as %s", key, version, "approved" if approved else "not approved")
