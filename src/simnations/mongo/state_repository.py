"""Read/write access to the simulated states (countries) of the game."""

from typing import List, Protocol

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from simnations.economy.errors import RepositoryError
from simnations.model.simulated_state import SimulatedState
from simnations.mongo.base import MongoClient

ELIGIBLE_FILTER = {"is_active": True}


class StateRepository(Protocol):
    """Boundary the batch executor talks to; no query logic leaks past it."""

    async def list_eligible_states(self) -> List[SimulatedState]: ...

    async def persist(self, state: SimulatedState) -> None: ...


class MongoStateRepository:
    """``StateRepository`` over the ``states`` collection.

    Eligible states are the active ones, returned in insertion order
    (ascending ``_id``). Every write is an independent ``update_one``.
    """

    def __init__(self, mongo: MongoClient, collection: str = "states"):
        self._mongo = mongo
        self._col = mongo.GAME_DB[collection]

    async def ping(self) -> None:
        try:
            await self._mongo.ping()
        except PyMongoError as exc:
            raise RepositoryError(f"State repository unreachable: {exc}") from exc

    async def list_eligible_states(self) -> List[SimulatedState]:
        try:
            docs = await self._col.find(ELIGIBLE_FILTER).sort("_id", ASCENDING).to_list(length=None)
        except PyMongoError as exc:
            raise RepositoryError(f"Failed to list eligible states: {exc}") from exc
        return [SimulatedState.from_document(doc) for doc in docs]

    async def persist(self, state: SimulatedState) -> None:
        try:
            res = await self._col.update_one({"_id": state.key}, {"$set": state.to_update()})
        except PyMongoError as exc:
            raise RepositoryError(f"Failed to persist state {state.state_id}: {exc}") from exc
        if res.matched_count == 0:
            raise RepositoryError(f"State {state.state_id} no longer exists")

    def close(self) -> None:
        self._mongo.close()
