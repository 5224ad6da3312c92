"""
One-off data migrations.

backfill_split_names: principals created before first/last names were
split only carry the legacy `name`. Copy it into first_name/last_name
once so nothing at runtime has to branch on which fields are set.
"""

from __future__ import annotations

import logging

from clubhouse.core.utils import split_full_name, utc_now
from clubhouse.storage import Collections, StorageProvider

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


async def backfill_split_names(storage: StorageProvider, batch_size: int = BATCH_SIZE) -> int:
    """
    Split legacy full names into first/last names.

    Only principals with neither first_name nor last_name are touched, so
    running it twice is harmless. Returns the number of principals updated.
    """
    updated = 0
    offset = 0

    while True:
        docs = await storage.metadata.query(Collections.USERS, limit=batch_size, offset=offset)
        if not docs:
            break
        offset += len(docs)

        for doc in docs:
            if doc.get("first_name") or doc.get("last_name"):
                continue
            legacy = (doc.get("name") or "").strip()
            if not legacy:
                continue

            first_name, last_name = split_full_name(legacy)
            await storage.metadata.update(
                Collections.USERS,
                doc["_id"],
                {"first_name": first_name, "last_name": last_name, "updated_at": utc_now()},
            )
            updated += 1

    logger.info(f"Backfilled first/last names for {updated} principal(s)")
    return updated
