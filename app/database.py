"""MongoDB database connection using Motor (async driver)"""

from contextlib import asynccontextmanager
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from app.config import settings

logger = logging.getLogger(__name__)


class Database:
    """Database connection manager"""
    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None


database = Database()


async def connect_to_mongo():
    """Connect to MongoDB on application startup"""
    database.client = AsyncIOMotorClient(settings.mongodb_url)
    database.db = database.client[settings.mongodb_db_name]
    await ensure_indexes(database.db)
    logger.info(f"Connected to MongoDB: {settings.mongodb_db_name}")


async def close_mongo_connection():
    """Close MongoDB connection on application shutdown"""
    if database.client:
        database.client.close()
        logger.info("Closed MongoDB connection")


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the order and return flows rely on"""
    await db.orders.create_index("order_number", unique=True)
    await db.orders.create_index([("user_id", 1), ("created_at", -1)])
    await db.orders.create_index("customer_email")
    await db.orders.create_index(
        "payment_transaction_id",
        unique=True,
        partialFilterExpression={"payment_transaction_id": {"$type": "string"}},
    )
    await db.orders.create_index([("payment_method", 1), ("payment_id", 1)])
    await db.payment_reconciliation.create_index([("payment_method", 1), ("payment_id", 1)])
    await db.returns.create_index("return_number", unique=True)
    await db.returns.create_index("order_id")
    await db.carts.create_index("owner", unique=True)
    await db.categories.create_index("slug", unique=True)
    await db.shipping_rates.create_index("country_code", unique=True)
    await db.refund_transactions.create_index("return_request_id")


def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance"""
    return database.db


@asynccontextmanager
async def transaction(db: AsyncIOMotorDatabase):
    """
    Yield a session bound to a multi-document transaction, or None.

    Transactions need a replica set, so they are only used when
    ``settings.mongodb_transactions`` is enabled. Callers must stay correct
    without one (conditional updates plus compensation).
    """
    if not settings.mongodb_transactions:
        yield None
        return

    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session
