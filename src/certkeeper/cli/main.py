"""certkeeper command-line entry point.

Usage::

    certkeeper -c /etc/certkeeper/config.yaml run
    certkeeper -c config.yaml --validate-only
    certkeeper -c config.yaml reconcile default web-tls
    certkeeper -c config.yaml inspect default web-tls
    certkeeper -c config.yaml test-issue --common-name test.internal
    python -m certkeeper -c config.yaml run
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certkeeper import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certkeeper",
        description="certkeeper: Kubernetes Certificate reconciliation controller",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # run
    subparsers.add_parser("run", help="Start the operator")

    # reconcile
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Reconcile one certificate once and print the requeue hint",
    )
    reconcile_parser.add_argument("namespace", help="Certificate namespace")
    reconcile_parser.add_argument("name", help="Certificate name")

    # test-issue
    issue_parser = subparsers.add_parser(
        "test-issue",
        help="Generate an ephemeral certificate to verify the issuer settings",
    )
    issue_parser.add_argument("--common-name", default="test.certkeeper.internal")
    issue_parser.add_argument("--duration", default="24h")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Print the stored certificate status")
    inspect_parser.add_argument("namespace", help="Certificate namespace")
    inspect_parser.add_argument("name", help="Certificate name")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"certkeeper: error: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    import yaml

    from certkeeper.config import CertkeeperConfig, ConfigValidationError

    try:
        config = CertkeeperConfig(config_file=config_path)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from certkeeper.logging import configure_logging

    configure_logging(config.settings.logging)
    if args.debug:
        logging.getLogger("certkeeper").setLevel(logging.DEBUG)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command

    if command == "reconcile":
        from certkeeper.cli.commands.reconcile import run_reconcile

        run_reconcile(config, args)
    elif command == "inspect":
        from certkeeper.cli.commands.inspect import run_inspect

        run_inspect(config, args)
    elif command == "test-issue":
        from certkeeper.cli.commands.issuer import run_test_issue

        run_test_issue(config, args)
    elif command == "run":
        from certkeeper.cli.commands.operator import run_operator_command

        _print_settings_summary(config)
        run_operator_command(config, args)
    else:
        parser.print_help(sys.stderr)
        sys.exit(2)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    namespaces = ", ".join(s.controller.namespaces) or "(all)"
    print(f"certkeeper {_get_version()}: configuration OK ({config.path})")
    print(f"  store:      {s.store.backend}")
    print(f"  namespaces: {namespaces}")
    print(f"  issuer:     RSA-{s.issuer.key_size} {s.issuer.hash_algorithm} O={s.issuer.organization}")
    if s.metrics.enabled:
        print(f"  metrics:    http://{s.metrics.bind}:{s.metrics.port}{s.metrics.path}")
    else:
        print("  metrics:    disabled")
