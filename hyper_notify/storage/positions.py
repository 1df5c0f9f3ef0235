"""
MongoDB position store.

Each instrument lives in its own collection ("{coin}_positions" by default)
with documents {px, sz, dir}. Sizes may be stored as Decimal128.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from bson.decimal128 import Decimal128
from loguru import logger
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from ..errors import StorageError
from ..types import Direction, InstrumentTotals, PositionRecord

COLLECTION_TEMPLATE = "{coin}_positions"
_DIRECTIONS = {d.value: d for d in Direction}


def to_float(value: Any) -> float:
    """Numeric field -> float (Decimal128, Decimal, int, float, None)."""
    if value is None:
        return 0.0
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def record_from_document(doc: dict) -> PositionRecord | None:
    """Map a stored document to a PositionRecord; None for unknown directions."""
    direction = _DIRECTIONS.get(doc.get("dir"))
    if direction is None:
        return None
    return PositionRecord(to_float(doc.get("px")), to_float(doc.get("sz")), direction)


def totals_pipeline() -> list[dict]:
    """Single-row aggregation: {Long: sum(sz where Long), Short: sum(sz where Short)}."""
    def side_sum(side: str) -> dict:
        return {"$sum": {"$cond": [{"$eq": ["$dir", side]}, "$sz", 0]}}

    return [
        {"$match": {"dir": {"$in": [d.value for d in Direction]}}},
        {"$group": {
            "_id": None,
            Direction.LONG.value: side_sum(Direction.LONG.value),
            Direction.SHORT.value: side_sum(Direction.SHORT.value),
        }},
        {"$project": {"_id": 0, Direction.LONG.value: 1, Direction.SHORT.value: 1}},
    ]


class MongoPositionStore:
    """PositionStore backed by pymongo's asyncio client."""

    def __init__(
        self,
        uri: str,
        database: str,
        collection_template: str = COLLECTION_TEMPLATE,
        timeout_ms: int = 10_000,
    ) -> None:
        self.collection_template = collection_template
        self._client: AsyncMongoClient = AsyncMongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            timeoutMS=timeout_ms,
        )
        self._db = self._client[database]

    def collection_name(self, instrument: str) -> str:
        return self.collection_template.format(coin=instrument.lower())

    async def ping(self) -> None:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            raise StorageError(f"MongoDB ping failed: {e}") from e
        logger.info("Connected to MongoDB")

    async def fetch_positions(
        self, instrument: str, min_price: float, max_price: float
    ) -> list[PositionRecord]:
        query = {"px": {"$gte": min_price, "$lt": max_price}}
        projection = {"_id": 0, "px": 1, "sz": 1, "dir": 1}
        collection = self._db[self.collection_name(instrument)]
        try:
            cursor = collection.find(query, projection)
            docs = await cursor.to_list(None)
        except PyMongoError as e:
            raise StorageError(f"position query for {instrument} failed: {e}") from e

        records = []
        for doc in docs:
            record = record_from_document(doc)
            if record is not None:
                records.append(record)
        return records

    async def fetch_totals(self, instrument: str) -> InstrumentTotals:
        collection = self._db[self.collection_name(instrument)]
        try:
            cursor = await collection.aggregate(totals_pipeline())
            rows = await cursor.to_list(None)
        except PyMongoError as e:
            raise StorageError(f"totals query for {instrument} failed: {e}") from e

        if not rows:
            return InstrumentTotals(0.0, 0.0)
        row = rows[0]
        return InstrumentTotals(
            to_float(row.get(Direction.LONG.value)),
            to_float(row.get(Direction.SHORT.value)),
        )

    async def close(self) -> None:
        await self._client.close()
        logger.info("MongoDB connection closed")
