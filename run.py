"""
Entry point: run the publishing scheduler against Supabase.

The publisher is supplied by the host application as a dotted path
``package.module:factory`` (``SCHEDULER_PUBLISHER`` or ``publisher_path`` in
``config/settings.yaml``).  The factory is called with no arguments and
returns an object with an async ``publish(content, credential)`` method.

Usage::

    python run.py            # tick until interrupted
    python run.py --once     # run a single tick and exit
"""

import argparse
import asyncio
import importlib
import inspect
import logging
import signal
import sys
from typing import Any

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def load_publisher(path: str) -> Any:
    """Import ``module:factory`` and build the publisher it returns."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Publisher path must look like 'package.module:factory', got {path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    publisher = factory()
    if inspect.isawaitable(publisher):
        publisher = await publisher
    return publisher


async def main(once: bool = False) -> int:
    from publish_scheduler.activity import ActivityLogger
    from publish_scheduler.config import get_settings, validate_env
    from publish_scheduler.database import SupabaseDB
    from publish_scheduler.exceptions import ConfigurationError
    from publish_scheduler.scheduling import PublishingScheduler

    try:
        validate_env(strict=True)
        settings = get_settings()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    logging.getLogger().setLevel(settings.log_level)

    if not settings.publisher_path:
        logger.error("No publisher configured. Set SCHEDULER_PUBLISHER=package.module:factory")
        return 1

    db = await SupabaseDB.create(
        fetch_retry_attempts=settings.fetch_retry_attempts,
        fetch_retry_base_delay=settings.fetch_retry_base_delay,
    )
    publisher = await load_publisher(settings.publisher_path)
    activity = ActivityLogger(
        sink=db,
        log_dir=settings.log_dir,
        max_recent=settings.activity_buffer_size,
    )
    scheduler = PublishingScheduler(
        store=db,
        credential_resolver=db,
        publisher=publisher,
        activity_logger=activity,
        check_interval_seconds=settings.check_interval_seconds,
        policies=settings.tiers,
    )

    if once:
        report = await scheduler.trigger_now()
        logger.info(
            "Single tick done: due=%d published=%d failed=%d already_claimed=%d "
            "not_finalized=%d aborted=%s",
            report.due_count,
            report.published,
            report.failed,
            report.already_claimed,
            report.not_finalized,
            report.aborted,
        )
        return 1 if report.aborted else 0

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    await scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the publishing scheduler.")
    parser.add_argument("--once", action="store_true", help="run a single tick and exit")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(once=args.once)))
