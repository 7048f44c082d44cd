#!/usr/bin/env python3
"""
GraftWatch - Generate Interactive Report Map
Loads approved reports from the configured store and writes an HTML map.
"""
import asyncio
import os
import sys
from datetime import datetime

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from graftwatch.core.config import settings
from graftwatch.core.constants import CORRUPTION_TYPE_LABELS
from graftwatch.crowdsource.models import Report
from graftwatch.store import Query, create_store
from graftwatch.visualization.map_generator import create_report_map


async def load_reports():
    store = create_store()
    try:
        snapshots = await store.query(Query("reports").where("status", "approved"))
    finally:
        await store.close()
    return [Report.from_snapshot(s) for s in snapshots]


def main():
    if not (settings.database_url or settings.firebase_credentials_path):
        print("ERROR: set DATABASE_URL or FIREBASE_CREDENTIALS_PATH in .env")
        sys.exit(1)

    print("=" * 60)
    print("GraftWatch - Generating Report Map")
    print("=" * 60)

    print("\nLoading approved reports...")
    reports = asyncio.run(load_reports())

    print(f"\nTotal approved reports: {len(reports)}")

    if not reports:
        print("No approved reports to show.")
        return

    # Statistics
    located = sum(1 for r in reports if r.location is not None)
    total_votes = sum(sum(r.votes.values()) for r in reports)

    print(f"\nStatistics:")
    print(f"  - With location: {located}")
    print(f"  - Votes cast:    {total_votes}")
    for corruption_type, label in CORRUPTION_TYPE_LABELS.items():
        count = sum(1 for r in reports if r.corruption_type == corruption_type)
        print(f"  - {corruption_type:<22} {count}  ({label})")

    print("\nGenerating interactive map...")

    report_map = create_report_map(
        reports,
        title=f"GraftWatch - Approved Reports ({datetime.now().strftime('%Y-%m-%d %H:%M')})",
    )

    output_path = os.path.join(os.path.dirname(__file__), "graftwatch_map.html")
    report_map.save(output_path)

    print(f"\nMap saved to: {output_path}")
    print("=" * 60)

if __name__ == "__main__":
    main()
