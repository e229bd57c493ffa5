"""Console output for rewrite runs."""
from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional

from rich.console import Console
from rich.table import Table

from .constants import SEPARATOR_LINE

if TYPE_CHECKING:
    from .rewrite import ContainerOutcome, RewriteReport


def format_resources(resources: Optional[Mapping]) -> str:
    """Render a resources mapping on one line, e.g. ``limits(cpu=250m, memory=500Mi)``."""
    if not resources:
        return "-"
    parts = []
    for section in ("limits", "requests"):
        values = resources.get(section)
        if isinstance(values, Mapping) and values:
            inner = ", ".join(f"{key}={value}" for key, value in values.items())
            parts.append(f"{section}({inner})")
    return " ".join(parts) if parts else str(dict(resources))


class ConsoleReporter:
    """Prints per-workload progress lines and an end-of-run summary table."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def banner(self, local_cluster: str, remote_cluster: str, adapter: str) -> None:
        print(SEPARATOR_LINE)
        print(f"LOCAL CLUSTER: {local_cluster}")
        print(f"REMOTE CLUSTER: {remote_cluster}")
        print(f"ADAPTER: {adapter}")

    def workload(self, namespace: str, kind: str, name: str) -> None:
        print(f"\nnamespace[{namespace}] objType[{kind}] objName[{name}]")

    def container(self, index: int, outcome: "ContainerOutcome") -> None:
        approval = f"[{outcome.approval}] " if outcome.approval is not None else ""
        print(f"{index}.{outcome.container}: {approval}{outcome.source}: {format_resources(outcome.resources)}")
        for note in outcome.notes:
            print(f"  {note}")

    def summary(self, report: "RewriteReport") -> None:
        """Print a table of every container and the value source that applied."""
        if not report.outcomes:
            self.console.print("No supported workloads found in chart.")
            return

        table = Table(title="Resource Rewrite Summary")
        table.add_column("Namespace", style="cyan")
        table.add_column("Kind", style="magenta")
        table.add_column("Name")
        table.add_column("Container")
        table.add_column("Approval")
        table.add_column("Source", style="green")

        for outcome in report.outcomes:
            table.add_row(
                outcome.namespace,
                outcome.kind,
                outcome.name,
                outcome.container,
                str(outcome.approval) if outcome.approval is not None else "-",
                outcome.source,
            )

        self.console.print(table)
