"""MongoDB connection helpers backed by Motor."""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from simnations.configs.env_config import Env


class MongoClient:
    """Thin wrapper exposing the game database."""

    def __init__(self, uri: Optional[str] = None, db_name: Optional[str] = None, *, is_test: bool = False):
        """Initialise the Motor client and select the database.

        :param uri: Connection string; defaults to ``MONGO_URI``.
        :param db_name: Database name; defaults to ``MONGO_DB_NAME``.
        :param is_test: Whether to use the ``T_``-prefixed test database.
        """

        self.client = AsyncIOMotorClient(uri or Env.MONGO_URI, tz_aware=True)
        name = db_name or Env.MONGO_DB_NAME
        self.GAME_DB = self.client[f"T_{name}" if is_test else name]

    async def ping(self) -> None:
        """Round-trip to the server; raises ``PyMongoError`` when unreachable."""
        await self.client.admin.command("ping")

    def close(self) -> None:
        self.client.close()
