"""
Repair or trim an owner's forecast buckets.

rebuild: recompute every hourly/daily bucket from the facets' due times
         (use after counters drifted, e.g. following a manual data fix)
prune:   delete buckets for days before a cutoff (default: today)

Usage:
    python -m scripts.maintenance.rebuild_forecast rebuild --owner alice
    python -m scripts.maintenance.rebuild_forecast prune --owner alice --days 30
"""

import argparse
from datetime import timedelta

from aisrs import srs
from aisrs.srs.clock import utc_now


def main():
    parser = argparse.ArgumentParser(description="Rebuild or prune forecast buckets")
    parser.add_argument("action", choices=["rebuild", "prune"])
    parser.add_argument("--owner", required=True, help="Owner id")
    parser.add_argument(
        "--days",
        type=int,
        default=0,
        help="prune: keep this many past days (default 0 keeps only today onward)"
    )
    args = parser.parse_args()

    srs.init_db()
    tracker = srs.ForecastStatsTracker()

    if args.action == "rebuild":
        placed = tracker.rebuild(args.owner)
        print(f"✓ Rebuilt forecast for {args.owner} from {placed} facets")
    else:
        cutoff = utc_now() - timedelta(days=args.days)
        removed = tracker.prune(args.owner, cutoff)
        print(f"✓ Removed {removed} bucket rows for {args.owner}")

    forecast = tracker.get_forecast(args.owner)
    print(f"  Due now: {forecast.due_now}, next 24h: {forecast.next_24_hours}")


if __name__ == "__main__":
    main()
