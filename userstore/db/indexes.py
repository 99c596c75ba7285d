"""
userstore/db/indexes.py

Purpose: Database index management

- Indexes backing every query the user repository issues
- Idempotent: safe to run on every startup
"""

from pymongo import ASCENDING, DESCENDING

from userstore.db.mongo import get_users_collection
from userstore.core.logging import get_logger

logger = get_logger(__name__)

# (keys, options) for each users index
USER_INDEXES = [
    ([("user_id", ASCENDING)], {"name": "user_id_unique", "unique": True}),
    # Not unique: uniqueness of usernames is the caller's concern
    ([("username", ASCENDING)], {"name": "username_idx", "sparse": True}),
    ([("phone", ASCENDING)], {"name": "phone_idx", "sparse": True}),
    ([("presence", ASCENDING)], {"name": "presence_idx"}),
    ([("premium", ASCENDING)], {"name": "premium_idx"}),
    ([("last_active", DESCENDING)], {"name": "last_active_idx"}),
]


async def create_indexes(collection=None):
    """
    Creates all users indexes.

    Args:
        collection: Target collection, defaults to the configured users collection
    """
    try:
        users = collection if collection is not None else get_users_collection()

        logger.info("Creating database indexes...")

        for keys, options in USER_INDEXES:
            await users.create_index(keys, **options)
            logger.debug(f"Created index {options['name']} on users")

        user_indexes = await users.index_information()
        logger.info(f"All database indexes created: users={len(user_indexes)}")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


async def drop_all_indexes(collection=None):
    """
    Drops all custom indexes (keeps _id index).
    Use with caution! Only for maintenance/migration.
    """
    try:
        users = collection if collection is not None else get_users_collection()

        logger.warning("Dropping all database indexes...")
        await users.drop_indexes()
        logger.info("All indexes dropped successfully")

    except Exception as e:
        logger.error(f"Failed to drop indexes: {str(e)}", exc_info=True)
        raise
