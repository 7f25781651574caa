#!/usr/bin/env python3
"""Fill in missing AniDB ids on stored anime records from the mapping database."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from anisync.core.engine import SyncEngine  # noqa: E402


async def run(limit: int | None, refresh: bool, dry_run: bool) -> int:
    engine = SyncEngine()
    try:
        if refresh:
            stats = await engine.importer.run()
            print(f"Imported {stats.complete} mappings ({stats.errors} errors)")

        if dry_run:
            records = engine.anime_store.find_missing_secondary(limit)
            for record in records:
                mapping = engine.mapping_store.find_by_primary(record.mal_id or 0)
                target = mapping.anidb_id if mapping else "no mapping"
                print(f"[DRY RUN] {record.title} (MAL {record.mal_id}) -> {target}")
            print(f"{len(records)} record(s) without an AniDB id")
            return 0

        result = engine.backfill(limit)
        print(f"Updated {result['updated']}, no mapping for {result['notFound']}")
        return 0
    finally:
        await engine.close()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--limit", type=int, default=None, help="Maximum number of records to update"
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Re-import the mapping dataset before backfilling",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Don't actually make any changes"
    )
    args = parser.parse_args()
    return asyncio.run(run(args.limit, args.refresh, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
