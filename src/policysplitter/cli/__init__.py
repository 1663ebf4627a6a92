from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from policysplitter import __version__
from policysplitter.config import Settings
from policysplitter.core.errors import ConfigurationError, main_with_error_handling
from policysplitter.domain.models import ObjectKey


def _object_key(value: str) -> ObjectKey:
    try:
        return ObjectKey.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--kubeconfig", help="Absolute path to the kubeconfig file")
    parser.add_argument("--context", help="Kubeconfig context to use")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ...)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policy-splitter",
        description="Split root policies across clusters and aggregate leaf status",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Watch policies and reconcile them")
    _add_connection_args(run_parser)
    run_parser.add_argument("--namespace", help="Namespace to watch (default: all)")
    run_parser.add_argument("--workers", type=int, help="Concurrent reconcile workers")

    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile one policy once")
    _add_connection_args(reconcile_parser)
    reconcile_parser.add_argument("key", type=_object_key, help="NAMESPACE/NAME of the policy")

    status_parser = subparsers.add_parser("status", help="Show aggregated status of a policy")
    _add_connection_args(status_parser)
    status_parser.add_argument("key", type=_object_key, help="NAMESPACE/NAME of the policy")
    status_parser.add_argument(
        "-o",
        "--output",
        choices=["table", "yaml", "json"],
        default="table",
        help="Output format (default: table)",
    )

    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings with command line flags taking precedence."""
    overrides: dict[str, Any] = {
        "kubeconfig": getattr(args, "kubeconfig", None),
        "context": getattr(args, "context", None),
        "namespace": getattr(args, "namespace", None),
        "workers": getattr(args, "workers", None),
        "log_level": getattr(args, "log_level", None),
    }
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as exc:
        problems = [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]
        raise ConfigurationError("Invalid settings", {"errors": "; ".join(problems)}) from exc


@main_with_error_handling()
def dispatch(args: argparse.Namespace) -> int:
    """Load settings and run the selected command."""
    settings = settings_from_args(args)

    from policysplitter.cli import commands

    if args.command == "run":
        return commands.run_command(settings)
    if args.command == "reconcile":
        return commands.reconcile_command(args.key, settings)
    if args.command == "status":
        return commands.status_command(args.key, settings, output_format=args.output)
    raise ConfigurationError(f"unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(dispatch(args))
