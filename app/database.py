"""MongoDB database connection using Motor (async driver)."""
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

from app.config import settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB."""
        self.client = AsyncIOMotorClient(settings.mongodb_url, tz_aware=True)
        self.db = self.client[settings.mongodb_db_name]
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    def get_collection(self, name: str):
        """Get a MongoDB collection."""
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db[name]


async def ensure_indexes(db) -> None:
    """
    Create the indexes the time entry store relies on.

    The partial unique index rejects a second running entry for the same
    entity at the database level.
    """
    entries = db[settings.time_entries_collection]
    await entries.create_index(
        [("entity_type", ASCENDING), ("entity_id", ASCENDING)],
        name="entity_lookup",
    )
    await entries.create_index([("is_running", ASCENDING)], name="running_lookup")
    await entries.create_index(
        [("entity_type", ASCENDING), ("entity_id", ASCENDING)],
        name="one_running_per_entity",
        unique=True,
        partialFilterExpression={"is_running": True},
    )

    await db[settings.tasks_collection].create_index(
        [("parent_task_id", ASCENDING)], name="parent_task_lookup"
    )
    await db[settings.tasks_collection].create_index(
        [("project_id", ASCENDING)], name="project_task_lookup"
    )
    await db[settings.projects_collection].create_index(
        [("parent_project_id", ASCENDING)], name="parent_project_lookup"
    )
    logger.info("Ensured time tracking indexes")


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db
