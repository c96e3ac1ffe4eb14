import logging

from pymongo import ASCENDING, IndexModel

from richlink_api.persistence import mongo_client

logger = logging.getLogger(__name__)


class BaseMongo:
    def __init__(self, collection):
        self.collection = collection

    async def find_one(self, query, sort=None, session=None):
        return await mongo_client.db[self.collection].find_one(
            query, sort=sort, session=session
        )

    async def insert_one(self, document, session=None):
        return await mongo_client.db[self.collection].insert_one(
            document, session=session
        )

    async def update_one(self, query, new_state, upsert=False, session=None):
        return await mongo_client.db[self.collection].update_one(
            query, new_state, upsert=upsert, session=session
        )

    async def delete_one(self, query, session=None):
        return await mongo_client.db[self.collection].delete_one(query, session=session)

    async def find_all(self, query, sort=None, limit=0):
        cursor = mongo_client.db[self.collection].find(query, sort=sort, limit=limit)
        return await cursor.to_list(length=None)

    async def count_documents(self, filter):
        return await mongo_client.db[self.collection].count_documents(filter)


user_links = BaseMongo("user_links")


async def initialize_db() -> None:
    logger.info(f"Initializing database: {mongo_client.db}")
    await mongo_client.db["user_links"].create_indexes(
        [
            IndexModel([("user_id", ASCENDING)]),
            IndexModel([("preview_status", ASCENDING), ("preview_expires_at", ASCENDING)]),
            IndexModel([("category", ASCENDING)]),
        ]
    )
