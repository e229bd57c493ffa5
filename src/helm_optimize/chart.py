"""Fetch, render and walk a chart in a temporary workspace."""
from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

import yaml

from .constants import DEFAULT_NAMESPACE
from .helm import HelmClient
from .manifests import ManifestTraverser, dump_documents, load_documents
from .types import ContainerSpec, HelmError, K8sObject, ManifestParseError

CHART_FILE = "Chart.yaml"
TEMPLATE_SUFFIXES = (".yaml", ".yml")


@dataclass
class Workload:
    """A supported workload document and its live container list."""

    kind: str
    name: str
    namespace: str
    document: K8sObject
    containers: List[ContainerSpec] = field(default_factory=list)


@dataclass
class TemplateFile:
    """One rendered template file and the documents it holds."""

    path: Path
    documents: List[Any]
    workloads: List[Workload] = field(default_factory=list)

    def save(self) -> None:
        """Write the (possibly rewritten) documents back to ``path``."""
        self.path.write_text(dump_documents(self.documents), encoding="utf-8")


def chart_name(chart_dir: Path) -> str:
    """Read the chart name from ``Chart.yaml``, falling back to the directory name."""
    try:
        data = yaml.safe_load((chart_dir / CHART_FILE).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError):
        return chart_dir.name
    if isinstance(data, dict) and isinstance(data.get("name"), str) and data["name"]:
        return data["name"]
    return chart_dir.name


def workloads_from_documents(
    documents: Sequence[Any],
    default_namespace: str = DEFAULT_NAMESPACE,
    skip_test_hooks: bool = False,
) -> List[Workload]:
    """Build workload views for every supported document, in document order."""
    workloads = []
    for document in documents:
        if not isinstance(document, dict):
            continue
        containers = ManifestTraverser.get_containers(document)
        if not containers:
            continue
        if skip_test_hooks and ManifestTraverser.is_test_hook(document):
            continue
        workloads.append(Workload(
            kind=ManifestTraverser.get_kind(document),
            name=ManifestTraverser.get_manifest_name(document),
            namespace=ManifestTraverser.get_manifest_namespace(document) or default_namespace,
            document=document,
            containers=containers,
        ))
    return workloads


class ChartWorkspace:
    """
    Temporary directory holding a copy of the chart being deployed.

    Use as a context manager; the directory is removed on exit whether or
    not the body raised.
    """

    def __init__(self, helm: HelmClient):
        self.helm = helm
        self.root: Optional[Path] = None
        self.chart_dir: Optional[Path] = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self) -> "ChartWorkspace":
        self.root = Path(tempfile.mkdtemp(prefix="helm-optimize-"))
        self.logger.debug("Created chart workspace %s", self.root)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.root is not None:
            shutil.rmtree(self.root, ignore_errors=True)
            self.logger.debug("Removed chart workspace %s", self.root)
            self.root = None

    def fetch(self, chart_ref: str, source_args: Sequence[str] = ()) -> Path:
        """
        Place the chart in the workspace.

        A local directory with ``Chart.yaml`` is copied to
        ``<workspace>/<chart name>``; anything else is pulled from a repository
        with ``source_args`` (``--version``, ``--repo``, credentials) passed on.

        Returns:
            Path of the chart directory inside the workspace
        """
        root = self._require_root()
        source = Path(chart_ref).expanduser()

        if (source / CHART_FILE).is_file():
            target = root / chart_name(source)
            shutil.copytree(source, target, symlinks=True)
        else:
            self.helm.pull(chart_ref, str(root), source_args)
            target = self._pulled_chart_dir(root)

        self.chart_dir = target
        self.logger.debug("Fetched chart %s into %s", chart_ref, target)
        return target

    def render(self, helm_args: Sequence[str]) -> None:
        """Render templates over the fetched chart with ``helm template``."""
        self.helm.template_to_dir(helm_args, str(self._require_root()))

    def _pulled_chart_dir(self, root: Path) -> Path:
        for child in sorted(root.iterdir()):
            if child.is_dir() and (child / CHART_FILE).is_file():
                return child
        raise HelmError(f"helm pull produced no chart in {root}")

    def _require_root(self) -> Path:
        if self.root is None:
            raise RuntimeError("ChartWorkspace used outside of its context")
        return self.root


class ChartWalker:
    """Visits rendered template files of a chart and its subcharts."""

    def __init__(self, default_namespace: str = DEFAULT_NAMESPACE):
        self.default_namespace = default_namespace
        self.logger = logging.getLogger(__name__)

    def walk(self, chart_dir: Path) -> Iterator[TemplateFile]:
        """
        Yield parsed template files.

        Subcharts under ``charts/`` are walked first in name order, then the
        ``*.yaml``/``*.yml`` files under ``templates/`` in sorted path order.
        Files that fail to parse are logged and skipped.
        """
        charts_dir = chart_dir / "charts"
        if charts_dir.is_dir():
            for subchart in sorted(charts_dir.iterdir()):
                if subchart.is_dir():
                    yield from self.walk(subchart)

        templates_dir = chart_dir / "templates"
        if not templates_dir.is_dir():
            self.logger.debug("No templates directory in %s", chart_dir)
            return

        for path in sorted(templates_dir.rglob("*")):
            if not path.is_file() or path.suffix not in TEMPLATE_SUFFIXES:
                continue
            try:
                yield self.load(path)
            except ManifestParseError as e:
                self.logger.warning("Skipping unparseable template %s: %s", path, e)

    def load(self, path: Path) -> TemplateFile:
        """
        Parse one template file.

        Raises:
            ManifestParseError: If the file cannot be read or is not valid YAML
        """
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseError(f"{path}: {e}", path=str(path)) from e

        documents = load_documents(text, path=str(path))
        return TemplateFile(
            path=path,
            documents=documents,
            workloads=workloads_from_documents(documents, self.default_namespace),
        )
