from __future__ import annotations

import argparse
import logging
import sys
import threading
from signal import SIGINT, SIGTERM, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from dnsward.app import apply_domain, delete_domain, get_domain, reconcile_domain, run_controller
from dnsward.config import configure_logging
from dnsward.domain.model import DEFAULT_DKIM_SELECTOR, DomainSpec, ObjectKey

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _add_key_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "key",
        type=str,
        help="Domain resource as namespace/name (bare names use the default namespace)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Verify mail-domain DNS and manage stats ingresses"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    apply = subparsers.add_parser("apply", help="Create or update a Domain")
    _add_key_argument(apply)
    apply.add_argument(
        "--base-domain",
        type=str,
        required=True,
        help="Mail domain whose records are verified",
    )
    apply.add_argument(
        "--dkim-selector",
        type=str,
        default=DEFAULT_DKIM_SELECTOR,
        help="DKIM selector to look up (default: %(default)s)",
    )
    apply.add_argument(
        "--dkim-public-key",
        type=str,
        help="Expected p= value of the DKIM record",
    )

    delete = subparsers.add_parser("delete", help="Delete a Domain and the ingress it owns")
    _add_key_argument(delete)

    get = subparsers.add_parser("get", help="Show a Domain and its status")
    _add_key_argument(get)

    reconcile = subparsers.add_parser("reconcile", help="Run one reconciliation pass")
    _add_key_argument(reconcile)

    run = subparsers.add_parser("run", help="Run the controller until interrupted")
    run.add_argument(
        "--workers",
        type=int,
        help="Number of worker threads (defaults to config)",
    )

    return parser.parse_args(list(argv))


def _validate(args: argparse.Namespace) -> tuple[ObjectKey | None, DomainSpec | None]:
    key = ObjectKey.parse(args.key) if args.command != "run" else None
    spec: DomainSpec | None = None
    if args.command == "apply":
        spec = DomainSpec(
            base_domain=args.base_domain,
            dkim_selector=args.dkim_selector,
            dkim_public_key=args.dkim_public_key,
        )
    if args.command == "run" and args.workers is not None and args.workers < 1:
        raise ValueError("Workers must be at least 1")
    return key, spec


_STOP = threading.Event()


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    try:
        key, spec = _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "apply" and key is not None and spec is not None:
            domain = apply_domain(key, spec)
            log.info("Domain %s is at version %s (uid=%s)", key, domain.version, domain.uid)
        elif parsed_args.command == "delete" and key is not None:
            if not delete_domain(key):
                sys.exit(1)
        elif parsed_args.command == "get" and key is not None:
            domain = get_domain(key)
            if domain is None:
                log.error("Domain %s not found", key)
                sys.exit(1)
            log.info(
                "%s: base_domain=%s dkim=%s stats=%s spf=%s version=%s",
                key,
                domain.spec.base_domain,
                domain.status.dkim,
                domain.status.stats,
                domain.status.spf,
                domain.version,
            )
        elif parsed_args.command == "reconcile" and key is not None:
            result = reconcile_domain(key)
            if result.deleted:
                log.info("Domain %s does not exist", key)
            else:
                log.info(
                    "Reconciled %s: status=%s ingress=%s next pass in %s",
                    key,
                    result.status,
                    result.ingress,
                    result.requeue_after,
                )
        elif parsed_args.command == "run":
            signal(SIGINT, sigint_handler)
            signal(SIGTERM, sigint_handler)
            run_controller(stop_event=_STOP, workers=parsed_args.workers)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Stop the controller gracefully on Ctrl+C."""
    log.info("Closed by user (Ctrl+C)")
    _STOP.set()


if __name__ == "__main__":
    main()
