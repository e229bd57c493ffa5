"""helm interface: rendering, pulling, pass-through and argument scanning."""
from __future__ import annotations

import logging
import re
from typing import List, Mapping, Optional, Sequence, Set, Tuple

from .constants import DEFAULT_HELM_BIN
from .process import run_attached, run_checked
from .types import HelmError

# One flag entry of `helm <sub> -h`, e.g. "  -n, --namespace string   namespace scope"
_FLAG_LINE = re.compile(r"^\s*(?:(-[A-Za-z]),\s+)?(--[A-Za-z0-9][\w-]*)(\s[A-Za-z]+)?\s{2,}")

_GENERATE_NAME_FLAGS = ("--generate-name", "-g")

# install/upgrade flags that select or authenticate the chart source, and
# whether each takes a value; `helm pull` accepts all of them
CHART_SOURCE_FLAGS: Mapping[str, bool] = {
    "--version": True,
    "--repo": True,
    "--username": True,
    "--password": True,
    "--ca-file": True,
    "--cert-file": True,
    "--key-file": True,
    "--keyring": True,
    "--devel": False,
    "--verify": False,
    "--insecure-skip-tls-verify": False,
    "--pass-credentials": False,
    "--plain-http": False,
}


def parse_boolean_flags(help_text: str) -> Set[str]:
    """
    Collect the flags of a help listing that take no value.

    A listed flag without a type token (``string``, ``int``, ...) is boolean.
    Both the long form and the shorthand are returned.
    """
    boolean_flags: Set[str] = set()
    for line in help_text.splitlines():
        match = _FLAG_LINE.match(line)
        if not match:
            continue
        short, long, value_type = match.groups()
        if value_type is None:
            boolean_flags.add(long)
            if short:
                boolean_flags.add(short)
    return boolean_flags


def _flag_name(token: str) -> str:
    return token.split("=", 1)[0]


def select_flags(args: Sequence[str], flags: Mapping[str, bool]) -> List[str]:
    """
    Return the tokens of ``args`` that belong to ``flags``, values included.

    ``flags`` maps each flag to whether it takes a separate value token.
    """
    selected: List[str] = []
    index = 0
    while index < len(args):
        token = args[index]
        name = _flag_name(token)
        if name in flags:
            selected.append(token)
            if flags[name] and "=" not in token and index + 1 < len(args):
                selected.append(args[index + 1])
                index += 1
        index += 1
    return selected


def drop_flags(args: Sequence[str], flags: Mapping[str, bool]) -> List[str]:
    """Return ``args`` without the tokens of ``flags`` and their values."""
    kept: List[str] = []
    index = 0
    while index < len(args):
        token = args[index]
        name = _flag_name(token)
        if name in flags:
            if flags[name] and "=" not in token:
                index += 1
        else:
            kept.append(token)
        index += 1
    return kept


def needs_flag_listing(args: Sequence[str]) -> bool:
    """False when the release name and chart are the two tokens after the subcommand."""
    return not (len(args) > 2 and not args[1].startswith("-") and not args[2].startswith("-"))


def _positionals(args: Sequence[str], boolean_flags: Set[str]) -> List[Tuple[int, str]]:
    """Return ``(index, token)`` for every positional of ``args`` past the subcommand."""
    positionals = []
    skip_next = False
    for index in range(1, len(args)):
        token = args[index]
        if skip_next:
            skip_next = False
            continue
        if token.startswith("-"):
            if "=" not in token and token not in boolean_flags:
                skip_next = True
            continue
        positionals.append((index, token))
    return positionals


def locate_chart_argument(
    args: Sequence[str],
    boolean_flags: Optional[Set[str]] = None,
) -> Tuple[str, int]:
    """
    Find the chart reference in an install/upgrade command line.

    ``args[0]`` is the subcommand. The chart is the positional right after
    the release name, or the first positional when a name is generated.

    Args:
        args: Command line without the helm binary
        boolean_flags: Flags of the subcommand that take no value

    Returns:
        Tuple of the chart reference and its index in ``args``

    Raises:
        HelmError: If no chart positional can be found
    """
    if not needs_flag_listing(args):
        return args[2], 2

    positionals = _positionals(args, boolean_flags or set())
    wanted = 0 if any(arg in _GENERATE_NAME_FLAGS for arg in args) else 1
    if len(positionals) <= wanted:
        raise HelmError(
            "could not locate the chart argument in: " + " ".join(args),
            command=args,
        )
    index, chart = positionals[wanted]
    return chart, index


class HelmClient:
    """Thin wrapper around the helm binary."""

    def __init__(self, helm_bin: str = DEFAULT_HELM_BIN):
        self.helm_bin = helm_bin
        self.logger = logging.getLogger(__name__)

    def template(self, args: Sequence[str]) -> str:
        """Render a chart to a string with ``helm template <args>``."""
        return run_checked([self.helm_bin, "template", *args], error_cls=HelmError).stdout

    def template_to_dir(self, args: Sequence[str], output_dir: str) -> None:
        """Render a chart into ``output_dir`` with ``--output-dir``."""
        run_checked(
            [self.helm_bin, "template", *args, "--output-dir", output_dir],
            error_cls=HelmError,
        )

    def pull(self, chart_ref: str, untar_dir: str, source_args: Sequence[str] = ()) -> None:
        """
        Download and unpack a chart from a repository into ``untar_dir``.

        ``source_args`` carries chart source flags such as ``--version``.
        """
        run_checked(
            [self.helm_bin, "pull", chart_ref, *source_args, "--untar", "--untardir", untar_dir],
            error_cls=HelmError,
        )

    def dry_run(self, args: Sequence[str]) -> None:
        """
        Validate a command with ``--dry-run``.

        Raises:
            HelmError: If helm rejects the command
        """
        run_checked([self.helm_bin, *args, "--dry-run"], error_cls=HelmError)

    def run(self, args: Sequence[str]) -> int:
        """Run helm attached to the terminal and return its exit status."""
        return run_attached([self.helm_bin, *args])

    def boolean_flags(self, subcommand: str) -> Set[str]:
        """
        Read the value-less flags of a subcommand from its help output.

        Raises:
            HelmError: If ``helm <subcommand> -h`` fails
        """
        result = run_checked([self.helm_bin, subcommand, "-h"], error_cls=HelmError)
        return parse_boolean_flags(result.stdout)

    def locate_chart(self, args: Sequence[str]) -> Tuple[str, int]:
        """Find the chart argument, consulting ``helm -h`` only when needed."""
        flags = self.boolean_flags(args[0]) if needs_flag_listing(args) else None
        return locate_chart_argument(args, flags)
