"""Process-wide handle on the MongoDB database holding ``user_links``.

``db`` stays None until the app lifespan calls ``initialize_mongo_client``,
so importing the persistence layer never opens a connection.
"""

import logging
from typing import Optional

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from richlink_api.configurations.config import settings

logger = logging.getLogger(__name__)

APP_NAME = "richlink-api"

_client: Optional[AsyncMongoClient] = None
db: Optional[AsyncDatabase] = None


def _build_client(uri: str) -> AsyncMongoClient:
    return AsyncMongoClient(
        uri,
        tz_aware=True,
        appname=APP_NAME,
        serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
    )


async def initialize_mongo_client(
    uri: Optional[str] = None, db_name: Optional[str] = None
) -> None:
    global _client, db
    if _client is None:
        _client = _build_client(uri or settings.mongodb_uri)
        db = _client[db_name or settings.mongodb_db_name]
        logger.info(f"Using MongoDB database {db.name}")

    await check_mongo_connection()


async def check_mongo_connection() -> None:
    """Ping the server; raises ConnectionError, or the driver's PyMongoError."""
    if _client is None:
        raise ConnectionError("MongoDB client is not initialized")

    response = await _client.admin.command("ping")
    if not response.get("ok"):
        raise ConnectionError(f"MongoDB ping failed: {response}")


async def close_mongo_client() -> None:
    global _client, db
    client, _client, db = _client, None, None
    if client is not None:
        await client.close()
        logger.info("MongoDB client closed")
