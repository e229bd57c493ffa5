"""Utility functions for manifest traversal, parsing and serialization."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import yaml

from .constants import CONTAINER_PATHS, HELM_HOOK_ANNOTATION, K8sFields
from .types import ContainerSpec, K8sObject, ManifestParseError


class ManifestTraverser:
    """Utility for traversing Kubernetes manifest structures."""

    @staticmethod
    def get_kind(manifest: K8sObject) -> str:
        kind = manifest.get(K8sFields.KIND)
        return kind if isinstance(kind, str) else ""

    @staticmethod
    def get_metadata(manifest: K8sObject) -> Dict[str, Any]:
        """Extract metadata from a manifest."""
        metadata = manifest.get(K8sFields.METADATA)
        return metadata if isinstance(metadata, dict) else {}

    @staticmethod
    def get_manifest_name(manifest: K8sObject) -> str:
        """Extract name from manifest metadata."""
        metadata = ManifestTraverser.get_metadata(manifest)
        name = metadata.get(K8sFields.NAME)
        return str(name) if isinstance(name, str) else ""

    @staticmethod
    def get_manifest_namespace(manifest: K8sObject) -> Optional[str]:
        """Extract namespace from manifest metadata."""
        metadata = ManifestTraverser.get_metadata(manifest)
        namespace = metadata.get(K8sFields.NAMESPACE)
        return str(namespace) if isinstance(namespace, str) and namespace else None

    @staticmethod
    def get_annotations(manifest: K8sObject) -> Dict[str, Any]:
        metadata = ManifestTraverser.get_metadata(manifest)
        annotations = metadata.get(K8sFields.ANNOTATIONS)
        return annotations if isinstance(annotations, dict) else {}

    @staticmethod
    def is_test_hook(manifest: K8sObject) -> bool:
        """Check whether a manifest is a ``helm test`` hook."""
        hook = ManifestTraverser.get_annotations(manifest).get(HELM_HOOK_ANNOTATION)
        return isinstance(hook, str) and hook.strip().startswith("test")

    @staticmethod
    def get_containers(manifest: K8sObject) -> List[ContainerSpec]:
        """
        Return the live container dicts of a supported workload.

        The returned dicts belong to ``manifest``; mutating them mutates the
        document. Unsupported kinds and malformed paths yield an empty list.
        """
        path = CONTAINER_PATHS.get(ManifestTraverser.get_kind(manifest))
        if path is None:
            return []

        node: Any = manifest
        for key in path:
            if not isinstance(node, dict):
                return []
            node = node.get(key)

        if not isinstance(node, list):
            return []
        return [container for container in node if isinstance(container, dict)]


def load_documents(text: str, path: Optional[str] = None) -> List[Any]:
    """
    Parse every YAML document in ``text``.

    Empty documents come back as None; ``dump_documents`` drops them.

    Raises:
        ManifestParseError: If the text is not valid YAML
    """
    try:
        return list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        location = f"{path}: " if path else ""
        raise ManifestParseError(f"{location}{e}", path=path) from e


def dump_documents(documents: Iterable[Any]) -> str:
    """Serialize documents back to a multi-document YAML string."""
    return yaml.safe_dump_all(
        [document for document in documents if document is not None],
        sort_keys=False,
        default_flow_style=False,
    )
