"""Copy an EmbeddingIndex to and from a Database collection."""

import logging
from typing import TYPE_CHECKING

from vecdex.db import Database
from vecdex.errors import EmptyIndexError, StoreError

if TYPE_CHECKING:
    from vecdex.index import EmbeddingIndex

logger = logging.getLogger(__name__)


async def save_index(
    index: "EmbeddingIndex", db: Database, db_name: str, collection_name: str
) -> None:
    """Write every record of ``index`` into ``collection_name``.

    Records are inserted one at a time in index order, each insert awaited
    before the next is issued. A failing insert stops the save and is
    re-raised; records inserted before it stay in the store.

    Raises:
        EmptyIndexError: If the index holds no records. The store is not touched.
    """
    if len(index) == 0:
        raise EmptyIndexError("Index is empty")

    try:
        await db.initialize_db(db_name)
        await db.make_object_store(collection_name)
        for record in index.records:
            await db.add_to_db(collection_name, record)
    except StoreError:
        logger.error("Error saving index to %r/%r", db_name, collection_name)
        raise

    logger.info(
        "Index saved to database %r collection %r (%d records)",
        db_name, collection_name, len(index),
    )


async def load_index(
    index: "EmbeddingIndex",
    db: Database,
    collection_name: str,
    db_name: str | None = None,
) -> int:
    """Replace the records of ``index`` with a stored collection.

    The collection is streamed through the store's cursor, so it is never
    held in memory twice. Each record is validated as it is added.

    Returns:
        Number of records loaded.
    """
    if db_name is not None:
        await db.initialize_db(db_name)

    index.clear()
    async for record in db.db_generator(collection_name):
        index.add(record)

    logger.info("Loaded %d records from collection %r", len(index), collection_name)
    return len(index)
