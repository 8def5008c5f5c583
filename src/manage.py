"""Storesplit management CLI.

Usage:
    python src/manage.py setup-db                       # Create all tables
    python src/manage.py drop-db                        # Drop all tables
    python src/manage.py link-legacy-divisions [--dry-run]
    python src/manage.py split ORDER_ID                 # Exit code 1 on partial failure
    python src/manage.py route ORDER_ID
    python src/manage.py reconcile                      # One full refetch pass
"""

import argparse
import json
import sys


def _domain():
    from dispatch.domain import dispatch

    print("Initializing dispatch domain...")
    dispatch.init()
    return dispatch


def setup_database():
    from dispatch.utils.db import setup_db

    domain = _domain()
    print("Creating dispatch database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from dispatch.utils.db import drop_db

    domain = _domain()
    print("Dropping dispatch database schema...")
    drop_db(domain)
    print("Done.")


def link_legacy_divisions(dry_run: bool) -> int:
    from dispatch.order.migration import LinkLegacyDivisions

    domain = _domain()
    with domain.domain_context():
        linked = domain.process(LinkLegacyDivisions(dry_run=dry_run), asynchronous=False)
    verb = "Would link" if dry_run else "Linked"
    print(f"{verb} {len(linked)} division(s).")
    return 0


def route_order(order_id: str, split_only: bool) -> int:
    from protean.exceptions import ValidationError

    from dispatch.errors import PartialSplitFailure
    from dispatch.planning.planner import DivisionPlanner
    from dispatch.utils.logging import bind_order, clear_context

    domain = _domain()
    bind_order(order_id)
    try:
        with domain.domain_context():
            planner = DivisionPlanner()
            try:
                outcome = planner.split(order_id) if split_only else planner.route(order_id)
            except ValidationError as e:
                print(f"Cannot route order {order_id}: {e.messages}", file=sys.stderr)
                return 1
        print(json.dumps(outcome.to_dict(), indent=2))
        try:
            outcome.raise_for_failures(order_id)
        except PartialSplitFailure as e:
            print(str(e), file=sys.stderr)
            return 1
        return 0
    finally:
        clear_context()


def reconcile_once() -> int:
    from dispatch.reconciliation.reconciler import Reconciler

    domain = _domain()
    with domain.domain_context():
        parents = Reconciler().refresh()
    print(f"Rolled up {parents} split order(s).")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Storesplit management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    link_parser = subparsers.add_parser("link-legacy-divisions", help="Backfill parent links from split notes")
    link_parser.add_argument("--dry-run", action="store_true", help="Report without writing")

    split_parser = subparsers.add_parser("split", help="Split (or retry splitting) a multi-store order")
    split_parser.add_argument("order_id")

    route_parser = subparsers.add_parser("route", help="Transfer or split an order as its items require")
    route_parser.add_argument("order_id")

    subparsers.add_parser("reconcile", help="Run one full reconciliation pass")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "link-legacy-divisions":
        sys.exit(link_legacy_divisions(args.dry_run))
    elif args.command == "split":
        sys.exit(route_order(args.order_id, split_only=True))
    elif args.command == "route":
        sys.exit(route_order(args.order_id, split_only=False))
    elif args.command == "reconcile":
        sys.exit(reconcile_once())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
