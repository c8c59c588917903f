"""Command-line tools.

Usage:
    billing-gateway sync-plans --store myapp.billing:make_store
    billing-gateway sign <secret> <payload_json>
"""

import argparse
import importlib
import json
import sys
import time

from billing_gateway.core.config import get_settings
from billing_gateway.services.billing import BillingServices, configured_plans
from billing_gateway.services.signature import generate_header
from billing_gateway.services.store import BillingStore


def load_store(path: str) -> BillingStore:
    """Import ``module:attr`` and call it to get the application's store."""
    module_name, sep, attr = path.partition(":")
    if not sep or not attr:
        raise ValueError(f"Expected 'module:attr', got {path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    store = factory() if callable(factory) else factory
    if not isinstance(store, BillingStore):
        raise TypeError(f"{path} did not produce a BillingStore")
    return store


def sync_plans(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = load_store(args.store)
    configs = configured_plans(settings)
    print(f"Found {len(configs)} subscription plans in configuration")

    services = BillingServices.from_settings(settings, store)
    report = services.plans.sync_plans(configs, store)

    for plan_id in report.created:
        print(f"created      {plan_id}")
    for plan_id in report.updated:
        print(f"updated      {plan_id}")
    for plan_id in report.deactivated:
        print(f"deactivated  {plan_id}")
    for plan_id, reason in report.kept.items():
        print(f"kept         {plan_id}: {reason}")
    for plan_id, reason in report.failed.items():
        print(f"FAILED       {plan_id}: {reason}", file=sys.stderr)
    return 0 if report.ok else 1


def sign(args: argparse.Namespace) -> int:
    try:
        json.loads(args.payload)
    except json.JSONDecodeError:
        print("Error: Payload must be valid JSON", file=sys.stderr)
        return 1
    timestamp = args.timestamp if args.timestamp is not None else int(time.time())
    print(generate_header(args.payload.encode("utf-8"), args.secret, timestamp))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="billing-gateway")
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser(
        "sync-plans",
        help="Synchronize subscription plans from configuration to the store and Stripe",
    )
    sync.add_argument(
        "--store", required=True, help="BillingStore factory as module:attr"
    )
    sync.set_defaults(func=sync_plans)

    signer = commands.add_parser("sign", help="Print a signature header for a payload")
    signer.add_argument("secret")
    signer.add_argument("payload")
    signer.add_argument("--timestamp", type=int, default=None)
    signer.set_defaults(func=sign)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
