"""Type definitions for manifests, insights and the plugin's error hierarchy."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, TypedDict

from .constants import CPU_UNIT, MEMORY_UNIT, K8sFields

# Basic Kubernetes types
K8sObject = Dict[str, Any]
K8sObjectList = List[K8sObject]
ContainerSpec = Dict[str, Any]
ResourceMapping = Dict[str, Dict[str, str]]
SecretBag = Dict[str, str]

_ASCII_DIGITS = re.compile(r"[0-9]+")


class ResourceValues(TypedDict, total=False):
    """Unit-less resource values as stored in the parameter store."""
    cpu: str
    memory: str


class StoredResourceSpec(TypedDict, total=False):
    """JSON body of a parameter-store resource spec."""
    limits: ResourceValues
    requests: ResourceValues


class Approval(str, Enum):
    """Approval state of a single container's recommendation."""

    APPROVED = "Approved"
    NOT_APPROVED = "Not Approved"

    @classmethod
    def from_bool(cls, approved: bool) -> "Approval":
        return cls.APPROVED if approved else cls.NOT_APPROVED

    @property
    def is_approved(self) -> bool:
        return self is Approval.APPROVED

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ResourceBlock:
    """CPU (millicores) and memory (MiB) limits and requests for a container."""

    cpu_limit: int
    mem_limit: int
    cpu_request: int
    mem_request: int

    @classmethod
    def from_values(
        cls,
        cpu_limit: Any,
        mem_limit: Any,
        cpu_request: Any,
        mem_request: Any,
    ) -> "ResourceBlock":
        """
        Build a block from raw values, requiring four positive integers.

        Integers and digit-only strings are accepted.

        Raises:
            InvalidSpecError: If any value is missing, non-integer or not positive
        """
        return cls(
            cpu_limit=_positive_int("cpu limit", cpu_limit),
            mem_limit=_positive_int("memory limit", mem_limit),
            cpu_request=_positive_int("cpu request", cpu_request),
            mem_request=_positive_int("memory request", mem_request),
        )

    @classmethod
    def from_stored(cls, spec: Mapping[str, Any]) -> "ResourceBlock":
        """Build a block from a unit-less ``{limits, requests}`` mapping."""
        limits = spec.get(K8sFields.LIMITS)
        requests = spec.get(K8sFields.REQUESTS)
        if not isinstance(limits, Mapping) or not isinstance(requests, Mapping):
            raise InvalidSpecError("resource spec must contain 'limits' and 'requests'")
        return cls.from_values(
            limits.get(K8sFields.CPU),
            limits.get(K8sFields.MEMORY),
            requests.get(K8sFields.CPU),
            requests.get(K8sFields.MEMORY),
        )

    def to_manifest(self) -> ResourceMapping:
        """Render the block as a container ``resources`` field with units."""
        return {
            K8sFields.LIMITS: {
                K8sFields.CPU: f"{self.cpu_limit}{CPU_UNIT}",
                K8sFields.MEMORY: f"{self.mem_limit}{MEMORY_UNIT}",
            },
            K8sFields.REQUESTS: {
                K8sFields.CPU: f"{self.cpu_request}{CPU_UNIT}",
                K8sFields.MEMORY: f"{self.mem_request}{MEMORY_UNIT}",
            },
        }

    def to_stored(self) -> StoredResourceSpec:
        """Render the block without units, as kept in the parameter store."""
        return {
            "limits": {"cpu": str(self.cpu_limit), "memory": str(self.mem_limit)},
            "requests": {"cpu": str(self.cpu_request), "memory": str(self.mem_request)},
        }


def _positive_int(label: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidSpecError(f"invalid {label}: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _ASCII_DIGITS.fullmatch(value.strip()):
        number = int(value.strip())
    else:
        raise InvalidSpecError(f"invalid {label}: {value!r}")
    if number <= 0:
        raise InvalidSpecError(f"invalid {label}: {value!r}")
    return number


@dataclass(frozen=True)
class ContainerIdentity:
    """Lookup key of a container in an insights repository."""

    cluster: str
    namespace: str
    kind: str
    name: str
    container: str

    def __str__(self) -> str:
        return f"{self.cluster}/{self.namespace}/{self.kind}/{self.name}/{self.container}"


# Protocol for insight sources
class InsightSource(Protocol):
    """Capability set shared by all insight adapters."""

    def initialize(self, reconfigure: bool = False) -> None:
        ...

    def get_insight(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Tuple[ResourceBlock, Approval]:
        ...

    def get_approval(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Approval:
        ...

    def set_approval(
        self, approved: bool, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> None:
        ...


# Error types
class OptimizeError(Exception):
    """Base exception for the optimize plugin."""


class TransportError(OptimizeError):
    """An external CLI exited non-zero or an HTTP call did not return 200."""


class ExecError(TransportError):
    """Error from running an external process."""

    def __init__(
        self,
        message: str,
        exit_status: int = 1,
        stderr: str = "",
        command: Optional[Sequence[str]] = None,
    ):
        super().__init__(message)
        self.exit_status = exit_status
        self.stderr = stderr
        self.command = list(command) if command is not None else None


class KubectlError(ExecError):
    """Error from kubectl operations."""


class HelmError(ExecError):
    """Error from helm operations."""


class AwsCliError(ExecError):
    """Error from aws-cli operations."""


class AnalyticsApiError(TransportError):
    """Analytics REST API returned a non-200 response or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CredError(OptimizeError):
    """Credentials are missing or were rejected by the backend."""


class InsightNotFoundError(OptimizeError):
    """No analysis, parameter or record matches the lookup key."""


class InvalidSpecError(OptimizeError):
    """A record matched but its resource values are unusable."""


class InsightUnavailableError(OptimizeError):
    """No usable insight could be obtained for a container."""


class ManifestParseError(OptimizeError):
    """A manifest or backend payload could not be parsed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ContextError(OptimizeError):
    """The local or remote cluster could not be determined."""
