"""Constants for Kubernetes field names, workload kinds and backend settings."""
from __future__ import annotations

from typing import Dict, Final, Sequence, Tuple


# Kubernetes API field names
class K8sFields:
    """Standard Kubernetes resource field names."""

    # Top-level fields
    API_VERSION: Final[str] = "apiVersion"
    KIND: Final[str] = "kind"
    METADATA: Final[str] = "metadata"
    SPEC: Final[str] = "spec"

    # Metadata fields
    NAME: Final[str] = "name"
    NAMESPACE: Final[str] = "namespace"
    ANNOTATIONS: Final[str] = "annotations"

    # Spec fields
    TEMPLATE: Final[str] = "template"
    CONTAINERS: Final[str] = "containers"
    JOB_TEMPLATE: Final[str] = "jobTemplate"

    # Container fields
    RESOURCES: Final[str] = "resources"
    LIMITS: Final[str] = "limits"
    REQUESTS: Final[str] = "requests"
    CPU: Final[str] = "cpu"
    MEMORY: Final[str] = "memory"


class WorkloadKinds:
    """Workload kinds whose containers can be rewritten."""

    POD: Final[str] = "Pod"
    CRON_JOB: Final[str] = "CronJob"
    DAEMON_SET: Final[str] = "DaemonSet"
    JOB: Final[str] = "Job"
    REPLICA_SET: Final[str] = "ReplicaSet"
    REPLICATION_CONTROLLER: Final[str] = "ReplicationController"
    STATEFUL_SET: Final[str] = "StatefulSet"
    DEPLOYMENT: Final[str] = "Deployment"


_POD_TEMPLATE_PATH: Final[Tuple[str, ...]] = (
    K8sFields.SPEC,
    K8sFields.TEMPLATE,
    K8sFields.SPEC,
    K8sFields.CONTAINERS,
)

# Path from the manifest root to the containers list, per supported kind
CONTAINER_PATHS: Final[Dict[str, Tuple[str, ...]]] = {
    WorkloadKinds.POD: (K8sFields.SPEC, K8sFields.CONTAINERS),
    WorkloadKinds.CRON_JOB: (
        K8sFields.SPEC,
        K8sFields.JOB_TEMPLATE,
        K8sFields.SPEC,
        K8sFields.TEMPLATE,
        K8sFields.SPEC,
        K8sFields.CONTAINERS,
    ),
    WorkloadKinds.DAEMON_SET: _POD_TEMPLATE_PATH,
    WorkloadKinds.JOB: _POD_TEMPLATE_PATH,
    WorkloadKinds.REPLICA_SET: _POD_TEMPLATE_PATH,
    WorkloadKinds.REPLICATION_CONTROLLER: _POD_TEMPLATE_PATH,
    WorkloadKinds.STATEFUL_SET: _POD_TEMPLATE_PATH,
    WorkloadKinds.DEPLOYMENT: _POD_TEMPLATE_PATH,
}

SUPPORTED_KINDS: Final[Sequence[str]] = tuple(CONTAINER_PATHS)

# Helm hook annotation used to tag chart test pods
HELM_HOOK_ANNOTATION: Final[str] = "helm.sh/hook"

# Resource units
CPU_UNIT: Final[str] = "m"
MEMORY_UNIT: Final[str] = "Mi"

# Secret names
ADAPTER_SECRET: Final[str] = "helm-optimize-plugin"
CLUSTER_MAPPING_SECRET: Final[str] = "helm-optimize-plugin-cluster-mapping"
ADAPTER_KEY: Final[str] = "adapter"
REMOTE_CLUSTER_KEY: Final[str] = "remoteCluster"


class AdapterNames:
    """Names under which adapters are stored in the adapter secret."""

    ANALYTICS: Final[str] = "analytics"
    PARAMETER_STORE: Final[str] = "parameter-store"


DEFAULT_ADAPTER: Final[str] = AdapterNames.ANALYTICS

# Labels shown in the adapter selection menu
ADAPTER_LABELS: Final[Dict[str, str]] = {
    AdapterNames.ANALYTICS: "Analytics Service",
    AdapterNames.PARAMETER_STORE: "Parameter Store",
}

# Analytics service
ANALYTICS_API_ROOT: Final[str] = "/CIRBA/api/v2"
ANALYTICS_AUTHORIZE_EP: Final[str] = "/authorize"
ANALYTICS_ANALYSIS_EP: Final[str] = "/analysis/containers/kubernetes"
ANALYTICS_SYSTEMS_EP: Final[str] = "/systems"
APPROVAL_ATTRIBUTE_ID: Final[str] = "attr_ApprovalSetting"
APPROVAL_ATTRIBUTE_NAME: Final[str] = "Approval Setting"
APPROVE_SPECIFIC_CHANGE: Final[str] = "Approve Specific Change"
APPROVE_ANY_CHANGE: Final[str] = "Approve Any Change"
NOT_APPROVED_SETTING: Final[str] = "Not Approved"

# Parameter store
PARAMETER_KEY_SUFFIX: Final[str] = "resourceSpec"
APPROVED_LABEL: Final[str] = "Approved"
NOT_APPROVED_LABEL: Final[str] = "NotApproved"
DEFAULT_AWS_PROFILE: Final[str] = "default"
DEFAULT_AWS_REGION: Final[str] = "us-east-1"
SUPPORTED_AWS_REGIONS: Final[Sequence[str]] = (
    "us-east-2",
    "us-east-1",
    "us-west-1",
    "us-west-2",
    "af-south-1",
    "ap-east-1",
    "ap-south-1",
    "ap-northeast-3",
    "ap-northeast-2",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-northeast-1",
    "ca-central-1",
    "cn-north-1",
    "cn-northwest-1",
    "eu-central-1",
    "eu-west-1",
    "eu-west-2",
    "eu-south-1",
    "eu-west-3",
    "eu-north-1",
    "me-south-1",
    "sa-east-1",
    "us-gov-east-1",
    "us-gov-west-1",
)

# Tags on a parameter holding the current and recommended values
CURRENT_VALUE_TAGS: Final[Sequence[str]] = (
    "currentCpuLimit",
    "currentMemLimit",
    "currentCpuRequest",
    "currentMemRequest",
)
RECOMMENDED_VALUE_TAGS: Final[Sequence[str]] = (
    "recommendedCpuLimit",
    "recommendedMemLimit",
    "recommendedCpuRequest",
    "recommendedMemRequest",
)

# Data forwarder config map
FORWARDER_PROPERTIES_KEY: Final[str] = "config.properties"
FORWARDER_MARKER: Final[str] = "Densify Inc. D/B/A Densify #  All Rights Reserved."

# Default values
DEFAULT_NAMESPACE: Final[str] = "default"
DEFAULT_HELM_BIN: Final[str] = "helm"
DEFAULT_KUBECTL_BIN: Final[str] = "kubectl"
DEFAULT_AWS_BIN: Final[str] = "aws"
PLUGIN_NAME: Final[str] = "Optimize Plugin"
PACKAGE_NAME: Final[str] = "helm-optimize"
SEPARATOR_LINE: Final[str] = "-" * 128

# Retry configuration
DEFAULT_RETRY_COUNT: Final[int] = 2
DEFAULT_RETRY_BACKOFF_BASE: Final[float] = 2.0
MAX_RETRY_DELAY_SECONDS: Final[float] = 60.0
