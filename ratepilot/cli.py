"""Job entry points.

Usage:
    python -m ratepilot sync --hotel-id 42 --property-id 170123
    python -m ratepilot preview --hotel-id 42 --start 2025-06-01 --end 2025-06-30
    python -m ratepilot recalculate --hotel-id 42 --start 2025-06-01 --end 2025-06-30 --push
    python -m ratepilot promote --hotel-id 42 --push
    python -m ratepilot context --hotel-id 42
"""

import argparse
import asyncio
import json
import logging
import sys

from ratepilot.config import settings
from ratepilot.logging_config import configure_logging
from ratepilot.services.config_service import PricingConfigMissingError, pricing_config_service
from ratepilot.services.decision_bridge_service import decision_bridge_service
from ratepilot.services.outcomes import OverrideBatch
from ratepilot.services.push_queue import rate_push_queue
from ratepilot.services.rate_override_service import rate_override_service

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ratepilot", description="Hotel rate computation and publishing jobs")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Pull the PMS catalog and hydrate the calendar")
    sync.add_argument("--hotel-id", required=True)
    sync.add_argument("--property-id", help="PMS property id (defaults to the stored one)")

    preview = sub.add_parser("preview", help="Show computed rates without writing anything")
    preview.add_argument("--hotel-id", required=True)
    preview.add_argument("--start", required=True, help="YYYY-MM-DD")
    preview.add_argument("--end", required=True, help="YYYY-MM-DD")

    recalc = sub.add_parser("recalculate", help="Recompute a date range and write AUTO overrides")
    recalc.add_argument("--hotel-id", required=True)
    recalc.add_argument("--start", required=True, help="YYYY-MM-DD")
    recalc.add_argument("--end", required=True, help="YYYY-MM-DD")
    recalc.add_argument("--push", action="store_true", help="Publish the payload to the PMS")

    promote = sub.add_parser("promote", help="Promote unapplied AI predictions to overrides")
    promote.add_argument("--hotel-id", required=True)
    promote.add_argument("--date", action="append", dest="dates", help="Limit to stay date (repeatable)")
    promote.add_argument("--push", action="store_true", help="Publish the payload to the PMS")

    context = sub.add_parser("context", help="Print the AI context document as JSON")
    context.add_argument("--hotel-id", required=True)

    return parser


async def _publish(hotel_id: str, batch: OverrideBatch, push: bool) -> dict:
    summary = {"calendar": batch.report.summary(), "push_items": len(batch.payload)}
    if not push or not batch.payload:
        return summary

    config = await pricing_config_service.require_config(hotel_id)
    if not config.pms_property_id:
        raise PricingConfigMissingError(hotel_id, "no PMS property id")
    report = await rate_push_queue.push(
        hotel_id, config.pms_property_id, batch.payload, deadline=settings.pms_push_deadline_seconds
    )
    summary["push"] = report.summary()
    summary["failed"] = [o.to_dict() for o in report.failed]
    return summary


async def run(args: argparse.Namespace) -> dict | list:
    hotel_id = str(args.hotel_id)

    if args.command == "sync":
        property_id = args.property_id
        if not property_id:
            property_id = (await pricing_config_service.require_config(hotel_id, need_rate_map=False)).pms_property_id
        if not property_id:
            raise PricingConfigMissingError(hotel_id, "no PMS property id")
        config = await pricing_config_service.sync_catalog(hotel_id, property_id)
        return {"hotel_id": hotel_id, "rate_id_map": config.rate_id_map}

    if args.command == "preview":
        days = await rate_override_service.preview_calendar(hotel_id, None, args.start, args.end)
        return [d.to_dict() for d in days]

    if args.command == "recalculate":
        batch = await rate_override_service.recalculate(hotel_id, args.start, args.end)
        return await _publish(hotel_id, batch, args.push)

    if args.command == "promote":
        batch = await decision_bridge_service.promote_predictions(hotel_id, stay_dates=args.dates)
        return await _publish(hotel_id, batch, args.push)

    if args.command == "context":
        return await decision_bridge_service.get_hotel_context(hotel_id)

    raise ValueError(f"Unknown command {args.command!r}")


async def _main(args: argparse.Namespace) -> dict | list:
    from ratepilot.database import engine
    from ratepilot.services.pms_client import pms_client

    try:
        return await run(args)
    finally:
        await pms_client.close()
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        result = asyncio.run(_main(args))
    except PricingConfigMissingError as e:
        logger.error(str(e))
        return 2
    except ValueError as e:
        logger.error(f"Invalid arguments: {e}")
        return 2

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
