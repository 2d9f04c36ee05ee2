"""Analytics roll-up worker.

Folds page views and interactions buffered in the cache into the persisted
per-EPK summaries.

Usage:
    python -m presskit.workers.process_analytics --once
    python -m presskit.workers.process_analytics --loop --sleep 300
"""
import argparse
import time
from typing import Optional

from presskit.core.cache import Cache
from presskit.core.config import Settings, get_settings
from presskit.core.database import get_database
from presskit.core.logging import configure_logging
from presskit.features.analytics.service import AnalyticsService

DEFAULT_LOOP_SECONDS = 300


def build_service(settings: Optional[Settings] = None) -> AnalyticsService:
    settings = settings or get_settings()
    return AnalyticsService(
        get_database(settings.DATABASE_URL),
        Cache.from_url(settings.REDIS_URL, settings.CACHE_PREFIX),
        enabled=settings.ENABLE_ANALYTICS,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Analytics roll-up worker")
    parser.add_argument("--once", action="store_true", help="Process buffered events once and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=int,
        default=DEFAULT_LOOP_SECONDS,
        help="Seconds to sleep between loops (when --loop)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.ENV, settings.LOG_LEVEL)
    service = build_service(settings)

    if not args.loop:
        processed = service.process_events()
        print(f"[analytics-worker] Processed: {processed}")
        return

    print(f"[analytics-worker] Starting loop (sleep={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            processed = service.process_events()
            if processed:
                print(f"[analytics-worker] Processed {processed} events")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[analytics-worker] Stopped")


if __name__ == "__main__":
    main()
