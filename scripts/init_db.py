"""
Database initialization script for the users collection

Run once (or on every deploy, it is idempotent):
    python scripts/init_db.py
    python scripts/init_db.py --seed
    python scripts/init_db.py --drop   # rebuild indexes from scratch
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables before settings are read
load_dotenv()

from userstore.core.config import settings, validate_settings
from userstore.core.logging import setup_logging, get_logger
from userstore.db.indexes import create_indexes, drop_all_indexes
from userstore.db.mongo import (
    close_mongo_connection,
    connect_to_mongo,
    get_user_repository,
    get_users_collection,
)
from userstore.models.user import User

setup_logging()
logger = get_logger("scripts.init_db")


async def seed_test_user():
    """Create a sample user unless one already exists."""
    repository = get_user_repository()

    exists = await repository.user_exists("test-user")
    if exists.is_failure:
        logger.error(f"Could not check for test user: {exists.error}")
        return
    if exists.value:
        logger.info("Test user already exists")
        return

    result = await repository.create_user(User(
        user_id="test-user",
        first_name="Test",
        last_name="User",
        username="test_user",
        phone="+10000000000",
    ))
    if result.is_success:
        logger.info("Test user created")
    else:
        logger.error(f"Test insert failed: {result.error}")


async def main(seed: bool = False, drop: bool = False):
    logger.info(f"Setting up {settings.MONGODB_DB_NAME}.{settings.USERS_COLLECTION}")

    validate_settings()
    await connect_to_mongo()
    try:
        if drop:
            await drop_all_indexes()
        await create_indexes()

        if seed:
            await seed_test_user()

        users = get_users_collection()
        indexes = await users.index_information()
        for name in indexes:
            if name != "_id_":
                logger.info(f"  index: {name}")
        logger.info(f"Users: {await users.count_documents({})}")
        logger.info("Database initialization complete")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main(seed="--seed" in sys.argv, drop="--drop" in sys.argv))
