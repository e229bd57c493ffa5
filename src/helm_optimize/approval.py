"""Interactive approval of recommendations for the containers of a chart."""
from __future__ import annotations

import logging
from typing import Callable, Sequence

from .chart import workloads_from_documents
from .constants import K8sFields
from .context import ClusterContext
from .helm import HelmClient
from .manifests import load_documents
from .prompts import prompt_confirm
from .types import Approval, CredError, InsightNotFoundError, InsightSource, OptimizeError


class ApprovalWorkflow:
    """
    Walks a rendered chart and toggles approval of each container.

    A container that is not approved is offered for approval; an approved
    one is offered for unapproval. Prompts run one at a time in document
    order.
    """

    def __init__(
        self,
        adapter: InsightSource,
        helm: HelmClient,
        cluster_context: ClusterContext,
        confirm: Callable[[str], bool] = prompt_confirm,
    ):
        self.adapter = adapter
        self.helm = helm
        self.context = cluster_context
        self.confirm = confirm
        self.logger = logging.getLogger(__name__)

    def run(self, chart_args: Sequence[str]) -> int:
        """
        Render ``chart_args`` and prompt for every supported container.

        Returns:
            Number of approval changes made
        """
        rendered = self.helm.template(chart_args)
        documents = load_documents(rendered)
        workloads = workloads_from_documents(
            documents,
            default_namespace=self.context.default_namespace,
            skip_test_hooks=True,
        )

        changes = 0
        cluster = self.context.remote_cluster
        for workload in workloads:
            print(f"\nnamespace[{workload.namespace}] objType[{workload.kind}] objName[{workload.name}]")
            for index, container in enumerate(workload.containers, 1):
                container_name = str(container.get(K8sFields.NAME) or "")
                key = (cluster, workload.namespace, workload.kind, workload.name, container_name)

                try:
                    current = self.adapter.get_approval(*key)
                except InsightNotFoundError:
                    print(f"{index}.{container_name} not found in repository.")
                    continue
                except CredError:
                    raise
                except OptimizeError as e:
                    self.logger.debug("Approval lookup failed for %s: %s", "/".join(key), e)
                    print(f"{index}.{container_name} unavailable: {e}")
                    continue

                if current is Approval.NOT_APPROVED:
                    question = f"{index}.{container_name} ({current}) Approve this insight"
                else:
                    question = f"{index}.{container_name} ({current}) Unapprove this insight"

                if not self.confirm(question):
                    continue
                try:
                    self.adapter.set_approval(current is Approval.NOT_APPROVED, *key)
                except CredError:
                    raise
                except OptimizeError as e:
                    print(f"{index}.{container_name} update failed: {e}")
                    continue
                changes += 1

        self.logger.debug("Made %d approval changes", changes)
        return changes
