"""Marketplace client CLI.

Runs the stub marketplace API and drives the seller console operations
against it (or against any server speaking the same contract).

Usage:
    python src/manage.py serve --port 8000
    python src/manage.py bulk-status ord-1 ord-2 --status processing
    python src/manage.py move ord-1 shipped --tracking 1Z999 --carrier UPS
    python src/manage.py toggle cart prod-1 prod-2
"""

import argparse
import asyncio
import sys

from ordering.config import SyncSettings
from ordering.exceptions import ConflictError, NetworkError, NotFoundError, ValidationError, error_code
from ordering.gateway.port import MembershipKind
from ordering.order.order import OrderStatus
from ordering.utils.logging import configure_logging


def _settings(args) -> SyncSettings:
    settings = SyncSettings.from_env()
    if args.api_url:
        settings = settings.model_copy(update={"adapter": "http", "api_url": args.api_url})
    return settings


def _print_batch(batch) -> int:
    for result in batch.results():
        marker = "ok" if result["ok"] else f"FAILED ({result['error']})"
        print(f"  {result['id']}: {marker}")
    print(batch.summary())
    return 0 if not batch.failed else 1


def serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("app:app", host=host, port=port, reload=reload)
    return 0


async def bulk_status(settings: SyncSettings, ids, status, note, single_request: bool) -> int:
    from ordering.bulk.actions import StatusAction
    from ordering.session import ClientSession

    async with ClientSession(settings) as session:
        if single_request:
            batch = await session.bulk.submit(ids, status, note=note)
        else:
            batch = await session.bulk.apply(ids, StatusAction(status=status, note=note))
        return _print_batch(batch)


async def move(settings: SyncSettings, order_id, status, note, tracking, carrier, eta) -> int:
    from ordering.bulk.actions import MoveOrderCard
    from ordering.session import ClientSession

    command = MoveOrderCard(
        order_id=order_id,
        target_status=status,
        note=note,
        tracking_number=tracking,
        carrier=carrier,
        estimated_delivery=eta,
    )
    async with ClientSession(settings) as session:
        return _print_batch(await session.bulk.move_card(command))


async def toggle(settings: SyncSettings, kind: MembershipKind, product_ids) -> int:
    from ordering.bulk.actions import MembershipAction
    from ordering.session import ClientSession

    async with ClientSession(settings) as session:
        batch = await session.bulk.apply(product_ids, MembershipAction(kind=kind))
        sync = session.membership(kind)
        for product_id in batch.succeeded:
            state = "added" if sync.effective(product_id) else "removed"
            print(f"  {product_id}: {state}")
        for product_id in batch.failed:
            print(f"  {product_id}: FAILED ({batch.outcome(product_id).error})")
        return 0 if not batch.failed else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Marketplace seller console")
    parser.add_argument("--api-url", help="Marketplace API base URL (switches to the HTTP adapter)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the stub marketplace API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")

    statuses = [s.value for s in OrderStatus]

    bulk_parser = subparsers.add_parser("bulk-status", help="Move many orders to one status")
    bulk_parser.add_argument("ids", nargs="+")
    bulk_parser.add_argument("--status", choices=statuses, required=True)
    bulk_parser.add_argument("--note")
    bulk_parser.add_argument(
        "--single-request",
        action="store_true",
        help="Send one bulk-status request instead of one request per order",
    )

    move_parser = subparsers.add_parser("move", help="Move one order card to another column")
    move_parser.add_argument("order_id")
    move_parser.add_argument("status", choices=statuses)
    move_parser.add_argument("--note")
    move_parser.add_argument("--tracking")
    move_parser.add_argument("--carrier")
    move_parser.add_argument("--eta", help="Estimated delivery date (YYYY-MM-DD)")

    toggle_parser = subparsers.add_parser("toggle", help="Toggle products in the cart or wishlist")
    toggle_parser.add_argument("kind", choices=[k.value for k in MembershipKind])
    toggle_parser.add_argument("product_ids", nargs="+")

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "serve":
        return serve(args.host, args.port, args.reload)

    from ordering.domain import ordering

    ordering.init()
    settings = _settings(args)
    try:
        with ordering.domain_context():
            if args.command == "bulk-status":
                return asyncio.run(bulk_status(settings, args.ids, args.status, args.note, args.single_request))
            if args.command == "move":
                return asyncio.run(
                    move(settings, args.order_id, args.status, args.note, args.tracking, args.carrier, args.eta)
                )
            return asyncio.run(toggle(settings, MembershipKind(args.kind), args.product_ids))
    except (ValidationError, NotFoundError, ConflictError, NetworkError) as exc:
        print(f"{error_code(exc)}: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
