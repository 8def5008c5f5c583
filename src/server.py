"""Background runner for the dispatch domain.

Runs, side by side:
- the reconciler: applies change hints and periodically refetches every order
  so each split order's rollup converges
- the reminder job: nudges stores that have not answered an assigned order
- the Protean Engine, when events are processed asynchronously

Usage:
    python src/server.py                       # Everything
    python src/server.py --no-engine           # Reconciler and reminders only
    python src/server.py --reminder-interval 120
"""

import argparse
import asyncio
import os
import signal

import structlog
from protean.server.engine import Engine

logger = structlog.get_logger(__name__)


def _get_domain():
    from dispatch.domain import dispatch

    dispatch.init()
    return dispatch


async def remind_periodically(domain, stop: asyncio.Event, interval: float) -> None:
    from dispatch.order.reminders import RemindPendingStores

    while not stop.is_set():
        with domain.domain_context():
            try:
                domain.process(RemindPendingStores(), asynchronous=False)
            except Exception as e:
                logger.error("Reminder job failed", error=str(e))
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            pass


async def reconcile(domain, stop: asyncio.Event) -> None:
    from dispatch.reconciliation.reconciler import Reconciler

    await Reconciler().run(stop, domain=domain)


async def run(with_engine: bool, reminder_interval: float):
    domain = _get_domain()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    tasks = [reconcile(domain, stop), remind_periodically(domain, stop, reminder_interval)]
    if with_engine and domain.config["event_processing"] == "async":
        engine = Engine(domain)
        tasks.append(engine.run())

    await asyncio.gather(*tasks)


def main():
    parser = argparse.ArgumentParser(description="Storesplit background runner")
    parser.add_argument("--no-engine", action="store_true", help="Do not start the Protean Engine")
    parser.add_argument(
        "--reminder-interval",
        type=float,
        default=float(os.environ.get("REMINDER_INTERVAL_SECONDS", "300")),
        help="Seconds between reminder runs (default: 300)",
    )
    args = parser.parse_args()

    asyncio.run(run(with_engine=not args.no_engine, reminder_interval=args.reminder_interval))


if __name__ == "__main__":
    main()
