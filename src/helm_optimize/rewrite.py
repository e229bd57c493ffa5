"""Replace container resources in a rendered chart with insights."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .chart import ChartWalker, TemplateFile, Workload
from .constants import CONTAINER_PATHS, K8sFields
from .context import ClusterContext
from .kubectl import KubectlClient
from .reporting import ConsoleReporter
from .types import Approval, ContainerSpec, InsightSource, InsightUnavailableError, KubectlError

NO_DEFAULT_WARNING = "*WARNING* No default config present!"


class ValueSource:
    """Where the final ``resources`` value of a container came from."""

    RECOMMENDED = "recommended"
    CURRENT = "current"
    LIVE = "live"
    DEFAULT = "default"
    WARNING = "warning"


@dataclass
class ContainerOutcome:
    """Result of rewriting one container."""

    namespace: str
    kind: str
    name: str
    container: str
    source: str
    approval: Optional[Approval] = None
    resources: Optional[Dict[str, Any]] = None
    notes: List[str] = field(default_factory=list)


@dataclass
class RewriteReport:
    outcomes: List[ContainerOutcome] = field(default_factory=list)
    files_written: List[Path] = field(default_factory=list)

    def count(self, source: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.source == source)


class LiveSpecProbe:
    """Reads a container's resources from the workload running in the cluster."""

    def __init__(self, kubectl: KubectlClient):
        self.kubectl = kubectl
        self.logger = logging.getLogger(__name__)

    def fetch(
        self, kind: str, name: str, namespace: str, container: str, cluster: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Return the running container's non-empty ``resources``, or None.

        Args:
            kind: Workload kind
            name: Workload name
            namespace: Workload namespace
            container: Container name
            cluster: Kubeconfig cluster to query
        """
        path = CONTAINER_PATHS.get(kind)
        if path is None:
            return None
        try:
            specs = self.kubectl.get_container_specs(kind, name, namespace, path, cluster=cluster)
        except KubectlError as e:
            self.logger.debug("Live spec of %s/%s unavailable: %s", kind, name, e)
            return None

        for spec in specs:
            if spec.get(K8sFields.NAME) != container:
                continue
            resources = spec.get(K8sFields.RESOURCES)
            if isinstance(resources, dict) and resources:
                return resources
            break
        return None


class RewriteEngine:
    """
    Applies insights to every supported container of a chart.

    For each container the first available value wins: the repository
    insight, the running workload's resources, the chart default. When none
    exists the ``resources`` field is left untouched and a warning printed.
    """

    def __init__(
        self,
        adapter: InsightSource,
        live_probe: LiveSpecProbe,
        cluster_context: ClusterContext,
        reporter: Optional[ConsoleReporter] = None,
        walker: Optional[ChartWalker] = None,
    ):
        self.adapter = adapter
        self.live_probe = live_probe
        self.context = cluster_context
        self.reporter = reporter or ConsoleReporter()
        self.walker = walker or ChartWalker(cluster_context.default_namespace)
        self.logger = logging.getLogger(__name__)

    def rewrite_chart(self, chart_dir: Path) -> RewriteReport:
        """Rewrite every template of ``chart_dir`` in place, in traversal order."""
        report = RewriteReport()
        for template in self.walker.walk(chart_dir):
            self.rewrite_template(template, report)
        return report

    def rewrite_template(self, template: TemplateFile, report: RewriteReport) -> None:
        if not template.workloads:
            return
        for workload in template.workloads:
            self.reporter.workload(workload.namespace, workload.kind, workload.name)
            for index, container in enumerate(workload.containers, 1):
                outcome = self.rewrite_container(workload, container)
                self.reporter.container(index, outcome)
                report.outcomes.append(outcome)
        template.save()
        report.files_written.append(template.path)
        self.logger.debug("Rewrote %s", template.path)

    def rewrite_container(self, workload: Workload, container: ContainerSpec) -> ContainerOutcome:
        """Resolve and apply the resources of one container."""
        container_name = str(container.get(K8sFields.NAME) or "")
        outcome = ContainerOutcome(
            namespace=workload.namespace,
            kind=workload.kind,
            name=workload.name,
            container=container_name,
            source=ValueSource.WARNING,
            approval=Approval.NOT_APPROVED,
        )

        try:
            block, approval = self.adapter.get_insight(
                self.context.remote_cluster,
                workload.namespace,
                workload.kind,
                workload.name,
                container_name,
            )
        except InsightUnavailableError as e:
            outcome.notes.append(f"Insight unavailable: {e}")
        else:
            resources = block.to_manifest()
            container[K8sFields.RESOURCES] = resources
            outcome.approval = approval
            outcome.source = ValueSource.RECOMMENDED if approval.is_approved else ValueSource.CURRENT
            outcome.resources = resources
            return outcome

        live = self.live_probe.fetch(
            workload.kind,
            workload.name,
            workload.namespace,
            container_name,
            cluster=self.context.local_cluster,
        )
        if live:
            container[K8sFields.RESOURCES] = live
            outcome.source = ValueSource.LIVE
            outcome.resources = live
            return outcome
        outcome.notes.append("Checking cluster: no running spec found")

        default = container.get(K8sFields.RESOURCES)
        if default:
            outcome.source = ValueSource.DEFAULT
            outcome.resources = default
        else:
            outcome.notes.append(NO_DEFAULT_WARNING)
        return outcome
