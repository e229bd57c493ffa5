"""Command line entry point of the helm optimize plugin."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import List, Optional, Sequence

import yaml

from .adapters import InsightAdapter, active_adapter_name, create_adapter, select_adapter
from .approval import ApprovalWorkflow
from .chart import ChartWorkspace
from .config import ConfigLoader, ConfigValidator, PluginConfig
from .constants import ADAPTER_LABELS, PACKAGE_NAME, PLUGIN_NAME, SEPARATOR_LINE
from .context import ContextResolver, remote_cluster_prompt
from .helm import CHART_SOURCE_FLAGS, HelmClient, drop_flags, select_flags
from .kubectl import KubectlClient
from .prompts import prompt_yes_no
from .reporting import ConsoleReporter
from .rewrite import LiveSpecProbe, RewriteEngine, ValueSource
from .secrets import SecretStore
from .types import CredError, ExecError, OptimizeError

USAGE_ERROR = "incorrect optimize-plugin command - refer to help menu"
DEFAULT_DESCRIPTION = (
    "Rewrites container resource requests and limits of a chart with "
    "recommendations from an insights repository before install or upgrade."
)

HELP_ARGS = ("help", "-h", "--help")
DEPLOY_COMMANDS = ("install", "upgrade")

# Flags accepted by `helm upgrade` that `helm template` rejects, and whether
# each takes a value
_UPGRADE_ONLY_FLAGS = {
    "--install": False,
    "-i": False,
    "--reuse-values": False,
    "--reset-values": False,
    "--reset-then-reuse-values": False,
    "--force": False,
    "--cleanup-on-fail": False,
    "--history-max": True,
}

# Provenance checks run at pull time; the rewritten chart is a plain directory
_VERIFY_FLAGS = {"--verify": False, "--keyring": True}

logger = logging.getLogger(__name__)


@dataclass
class PluginRuntime:
    """Collaborators shared by every command of one invocation."""

    config: PluginConfig
    kubectl: KubectlClient
    secrets: SecretStore
    helm: HelmClient
    reporter: ConsoleReporter

    @classmethod
    def from_config(cls, config: PluginConfig) -> "PluginRuntime":
        kubectl = KubectlClient(
            kubectl_bin=config.kubectl_bin,
            context=config.kube_context,
            max_retries=config.max_retries,
            backoff_base=config.backoff_base,
        )
        return cls(
            config=config,
            kubectl=kubectl,
            secrets=SecretStore(kubectl),
            helm=HelmClient(config.helm_bin),
            reporter=ConsoleReporter(),
        )

    def resolver(self) -> ContextResolver:
        return ContextResolver(self.config, self.kubectl, self.secrets)


def plugin_metadata(plugin_dir: Optional[str]) -> dict:
    """Read ``plugin.yaml`` from the plugin directory, or fall back to package metadata."""
    if plugin_dir:
        path = Path(plugin_dir) / "plugin.yaml"
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Could not read %s: %s", path, e)
        else:
            if isinstance(data, dict):
                return data

    try:
        version = metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        version = "unknown"
    return {"version": version, "description": DEFAULT_DESCRIPTION}


def print_help(config: PluginConfig) -> None:
    info = plugin_metadata(config.plugin_dir)
    print(SEPARATOR_LINE)
    print(f"NAME: {PLUGIN_NAME}")
    print(f"VERSION: {info.get('version', 'unknown')}")
    print(SEPARATOR_LINE)
    print(str(info.get("description", DEFAULT_DESCRIPTION)).rstrip())
    print(SEPARATOR_LINE)


def check_dependencies(kubectl: KubectlClient) -> None:
    """
    Make sure kubectl can reach the cluster.

    Raises:
        ExecError: If kubectl is missing or ``cluster-info`` fails
    """
    if not kubectl.check_connection():
        raise ExecError(
            f"{kubectl.kubectl_bin} cannot reach the cluster; check that it is installed "
            "and that 'kubectl cluster-info' succeeds"
        )


def initialize_adapter(adapter: InsightAdapter, reconfigure: bool = False) -> bool:
    """
    Initialize an adapter, offering another attempt after rejected credentials.

    Returns:
        True once initialized, False when the user gives up
    """
    while True:
        try:
            adapter.initialize(reconfigure=reconfigure)
            return True
        except CredError as e:
            print(f"Unable to initialize {ADAPTER_LABELS.get(adapter.name, adapter.name)}: {e}")
            if not prompt_yes_no("try again?", default=True):
                return False
            reconfigure = True


def load_active_adapter(runtime: PluginRuntime) -> Optional[InsightAdapter]:
    adapter = create_adapter(
        active_adapter_name(runtime.secrets), runtime.secrets, runtime.kubectl, runtime.config
    )
    if not initialize_adapter(adapter):
        return None
    return adapter


def configure_adapter(runtime: PluginRuntime) -> int:
    """``-c --adapter``: pick an adapter and enter fresh settings for it."""
    check_dependencies(runtime.kubectl)
    name = select_adapter(runtime.secrets)
    adapter = create_adapter(name, runtime.secrets, runtime.kubectl, runtime.config)
    if initialize_adapter(adapter, reconfigure=True):
        print(f"{ADAPTER_LABELS.get(name, name)} configured.")
    return 0


def configure_cluster_mapping(runtime: PluginRuntime) -> int:
    """``-c --cluster-mapping``: ask for the remote cluster name and save it."""
    check_dependencies(runtime.kubectl)
    resolver = runtime.resolver()
    remote = remote_cluster_prompt(resolver.local_cluster())
    resolver.save_remote_cluster(remote)
    return 0


def run_approval(runtime: PluginRuntime, chart_args: Sequence[str]) -> int:
    """``-a <chart-args>``: review approvals for the containers of a chart."""
    check_dependencies(runtime.kubectl)
    context = runtime.resolver().resolve()
    adapter = load_active_adapter(runtime)
    if adapter is None:
        return 0

    runtime.reporter.banner(context.local_cluster, context.remote_cluster, adapter.name)
    ApprovalWorkflow(adapter, runtime.helm, context).run(chart_args)
    return 0


def render_args(args: Sequence[str], chart_index: int, chart_path: str) -> List[str]:
    """Turn an install/upgrade command line into ``helm template`` arguments."""
    rendered = list(args)
    rendered[chart_index] = chart_path
    rendered = drop_flags(rendered[1:], _VERIFY_FLAGS)
    if args[0] == "upgrade":
        rendered = drop_flags(rendered, _UPGRADE_ONLY_FLAGS)
    return rendered


def deploy_args(args: Sequence[str], chart_index: int, chart_path: str) -> List[str]:
    """Point the original install/upgrade command line at the rewritten chart."""
    deployed = list(args)
    deployed[chart_index] = chart_path
    return drop_flags(deployed, _VERIFY_FLAGS)


def run_deploy(runtime: PluginRuntime, args: Sequence[str]) -> int:
    """
    ``install``/``upgrade``: rewrite the chart's resources, then run helm with it.

    Returns:
        helm's exit status
    """
    check_dependencies(runtime.kubectl)
    context = runtime.resolver().resolve()
    adapter = load_active_adapter(runtime)
    if adapter is None:
        print("Deployment cancelled: no insight repository configured.")
        return 1

    runtime.helm.dry_run(args)
    chart_ref, chart_index = runtime.helm.locate_chart(args)

    runtime.reporter.banner(context.local_cluster, context.remote_cluster, adapter.name)

    with ChartWorkspace(runtime.helm) as workspace:
        chart_dir = workspace.fetch(chart_ref, select_flags(args, CHART_SOURCE_FLAGS))
        workspace.render(render_args(args, chart_index, str(chart_dir)))

        engine = RewriteEngine(
            adapter,
            LiveSpecProbe(runtime.kubectl),
            context,
            reporter=runtime.reporter,
        )
        report = engine.rewrite_chart(chart_dir)

        print("\n" + SEPARATOR_LINE)
        runtime.reporter.summary(report)
        if report.count(ValueSource.WARNING):
            logger.warning("%d containers have no resources set", report.count(ValueSource.WARNING))

        return runtime.helm.run(deploy_args(args, chart_index, str(chart_dir)))


def dispatch(args: Sequence[str], runtime: PluginRuntime) -> int:
    """Route a plugin command line to its handler and return the exit status."""
    if not args or args[0] in HELP_ARGS:
        print_help(runtime.config)
        return 0

    if args[0] == "-c" and len(args) == 2:
        if args[1] == "--adapter":
            return configure_adapter(runtime)
        if args[1] == "--cluster-mapping":
            return configure_cluster_mapping(runtime)

    if args[0] == "-a" and len(args) > 2:
        return run_approval(runtime, args[1:])

    if args[0] in ("-c", "-a"):
        print(USAGE_ERROR)
        return 0

    if args[0] in DEPLOY_COMMANDS:
        return run_deploy(runtime, args)

    return runtime.helm.run(args)


def build_config() -> PluginConfig:
    config = ConfigLoader().load_config(PluginConfig.from_env())
    errors = ConfigValidator().validate_plugin_config(config)
    if errors:
        raise OptimizeError("invalid configuration: " + "; ".join(errors))
    return config


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        config = build_config()
        logging.basicConfig(
            level=logging.DEBUG if config.debug else logging.WARNING,
            format="%(levelname)s: %(message)s",
        )
        sys.exit(dispatch(args, PluginRuntime.from_config(config)))

    except KeyboardInterrupt:
        print("\nCancelled by user", file=sys.stderr)
        sys.exit(130)

    except OptimizeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
