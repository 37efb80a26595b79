"""
MongoDB connection lifecycle and store access

Tickets, notifications, templates and automations live in the tickets
database. User identity records and token usage live in their own databases
owned by the auth side of the platform.
"""

from typing import AsyncIterator, Optional
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
import logging

from pegasus.core.config import settings

logger = logging.getLogger(__name__)

# MongoDB client (pooled mode only)
client: Optional[AsyncIOMotorClient] = None


class MongoStore:
    """Typed access to the databases and collections used by the services"""

    def __init__(self, mongo_client: AsyncIOMotorClient):
        self.client = mongo_client

    @property
    def tickets_db(self):
        return self.client[settings.TICKETS_DATABASE_NAME]

    @property
    def auth_db(self):
        return self.client[settings.AUTH_DATABASE_NAME]

    @property
    def usage_db(self):
        return self.client[settings.USAGE_DATABASE_NAME]

    @property
    def users(self):
        return self.auth_db.user

    @property
    def token_usage(self):
        return self.usage_db.user_token_usage


def create_client() -> AsyncIOMotorClient:
    """Build a Motor client from settings"""
    return AsyncIOMotorClient(
        settings.MONGODB_URL,
        maxPoolSize=settings.MONGO_MAX_POOL_SIZE,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        retryWrites=True,
        retryReads=True
    )


async def connect_to_mongo():
    """Open the process-wide client used in pooled mode"""
    global client
    try:
        client = create_client()
        # Test connection
        await client.admin.command('ping')
        logger.info(f"✅ Connected to MongoDB (maxPoolSize={settings.MONGO_MAX_POOL_SIZE})")
    except Exception as e:
        logger.error(f"❌ Failed to connect to MongoDB: {e}")
        raise


async def close_mongo_connection():
    """Close MongoDB connection"""
    global client
    if client:
        client.close()
        client = None
        logger.info("✅ Closed MongoDB connection")


async def get_store() -> AsyncIterator[MongoStore]:
    """
    FastAPI dependency yielding a MongoStore

    In pooled mode the shared client opened at startup is reused. In
    per-request mode a fresh client is created for the request and closed
    once the response has been produced.
    """
    if settings.uses_pooled_connections:
        if client is None:
            raise RuntimeError("Database not initialized")
        yield MongoStore(client)
        return

    request_client = create_client()
    try:
        yield MongoStore(request_client)
    finally:
        request_client.close()


async def create_indexes(store: MongoStore):
    """Create database indexes for optimal performance"""
    try:
        tickets_db = store.tickets_db

        # Tickets (ticketNumber is looked up but not guaranteed unique)
        await tickets_db.tickets.create_index([("ticketNumber", ASCENDING)])
        await tickets_db.tickets.create_index([("userId", ASCENDING)])
        await tickets_db.tickets.create_index([("status", ASCENDING)])
        await tickets_db.tickets.create_index([("assignedTo", ASCENDING)])
        await tickets_db.tickets.create_index([("createdAt", DESCENDING)])

        # Notifications
        await tickets_db.notifications.create_index([("userId", ASCENDING), ("read", ASCENDING)])
        await tickets_db.notifications.create_index([("createdAt", DESCENDING)])

        # Identity and usage
        await store.users.create_index([("id", ASCENDING)])
        await store.token_usage.create_index([("userId", ASCENDING)])

        logger.info("✅ Database indexes created")
    except Exception as e:
        logger.error(f"❌ Failed to create indexes: {e}")
