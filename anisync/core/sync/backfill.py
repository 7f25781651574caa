"""Fill in missing AniDB ids on stored records from the Mapping Store."""

from anisync import log
from anisync.core.store import AnimeStore, MappingStore

__all__ = ["backfill_secondary_ids"]


def backfill_secondary_ids(
    anime_store: AnimeStore | None = None,
    mapping_store: MappingStore | None = None,
    *,
    limit: int | None = None,
) -> dict[str, int]:
    """Copy AniDB ids from the Mapping Store onto records that lack one.

    Args:
        anime_store (AnimeStore | None): Records to update
        mapping_store (MappingStore | None): Source of the ids
        limit (int | None): Maximum number of records to look at

    Returns:
        dict[str, int]: `{updated, notFound}`
    """
    anime_store = anime_store or AnimeStore()
    mapping_store = mapping_store or MappingStore()

    records = anime_store.find_missing_secondary(limit)
    log.info(f"Backfilling AniDB ids for $$'{len(records)}'$$ records")

    updated = not_found = 0
    for record in records:
        if record.mal_id is None:
            continue
        mapping = mapping_store.find_by_primary(record.mal_id)
        if mapping is None:
            not_found += 1
            log.debug(
                f"No mapping for $$'{record.title}'$$ "
                f"$${{mal_id: {record.mal_id}}}$$"
            )
            continue
        anime_store.merge_external_ids(record.id, {"anidb_id": mapping.anidb_id})
        updated += 1
        log.debug(
            f"Set AniDB id of $$'{record.title}'$$ to $$'{mapping.anidb_id}'$$"
        )

    log.success(
        f"Backfill finished: $$'{updated}'$$ updated, $$'{not_found}'$$ without "
        "a mapping"
    )
    return {"updated": updated, "notFound": not_found}
