# =============================================================================
# app.py
# Headless Delivery Tracker Runner
# =============================================================================
"""
Runs the tracker without a user interface: connects to the remote store,
loads the local cache, and keeps the refresh and end-of-day cleanup timers
running until interrupted.

    python app.py                       # run until Ctrl+C
    python app.py --status              # initialize, print status, exit
    python app.py --export exports/     # initialize, write JSON + CSV, exit
    python app.py --cleanup             # initialize, purge delivered orders now
"""

import asyncio
import json
import logging

from delivery_core.config import load_config
from delivery_core.context import build_context
from delivery_core.errors import DeliveryTrackerError, handle_error
from delivery_core.logging import setup_logging

logger = logging.getLogger("delivery_core.app")


async def run(args) -> int:
    config = load_config(args.secrets)
    context = await build_context(config)

    try:
        if args.status or args.export or args.cleanup:
            await context.engine.initialize()
        else:
            await context.start()

        if args.status:
            status = context.engine.get_status()
            status["cleanup"] = context.cleanup.get_cleanup_status()
            print(json.dumps(status, indent=2))
            return 0

        if args.export:
            engine = context.engine
            json_path = context.exporter.write_json(args.export, engine.daily_data, engine.stores)
            print(f"Backup written to {json_path}")
            if any(day.deliveries for day in engine.daily_data):
                csv_path = context.exporter.write_csv(args.export, engine.daily_data)
                print(f"CSV written to {csv_path}")
            return 0

        if args.cleanup:
            result = await context.cleanup.force_cleanup()
            print(json.dumps(result.to_dict(), indent=2))
            return 0 if not result.failed else 1

        # Run until cancelled
        await asyncio.Event().wait()
        return 0
    finally:
        await context.shutdown()


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Delivery tracker (headless)")
    parser.add_argument("--secrets", help="Path to secrets.toml")
    parser.add_argument("--status", action="store_true", help="Print sync status and exit")
    parser.add_argument("--export", metavar="DIR", help="Write JSON backup and CSV export to DIR")
    parser.add_argument("--cleanup", action="store_true", help="Remove today's delivered orders now")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    except DeliveryTrackerError as e:
        print(handle_error(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
