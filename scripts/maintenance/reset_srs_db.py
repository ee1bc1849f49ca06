"""
Drop and recreate the scheduling tables.

Wipes review facets, review history, stored AI questions, forecast
buckets and streak/accuracy counters for every owner. Knowledge units and
lessons in MongoDB are not touched.

Usage:
    python -m scripts.maintenance.reset_srs_db          # asks first
    python -m scripts.maintenance.reset_srs_db --yes    # no prompt
"""

import argparse

from sqlalchemy import func, select

from aisrs import srs
from aisrs.srs.models import Base


def table_counts() -> dict[str, int]:
    """Row count per scheduling table."""
    srs.init_db()
    session = srs.get_session()
    try:
        return {
            table.name: session.scalar(select(func.count()).select_from(table))
            for table in Base.metadata.sorted_tables
        }
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="Reset the scheduling database")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    args = parser.parse_args()

    counts = table_counts()
    print("Rows that will be deleted:")
    for name, count in counts.items():
        print(f"  {name:<20} {count}")

    if not args.yes:
        response = input("\nType 'reset' to drop every table above: ")
        if response.strip().lower() != "reset":
            print("Cancelled. No changes made.")
            return

    srs.reset_db()
    print(f"✓ Reset {len(counts)} tables ({sum(counts.values())} rows removed)")


if __name__ == "__main__":
    main()
