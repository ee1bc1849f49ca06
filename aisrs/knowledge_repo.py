"""
MongoDB repository for knowledge units and their cached lessons.

Implements the fact-store side of the scheduling engine: fact lookup,
mastery flag, kanji component stubs and the per-fact facet counter.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from dotenv import load_dotenv
from loguru import logger
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from aisrs.schemas import KnowledgeUnit, KnowledgeUnitStatus, KnowledgeUnitType, Lesson
from aisrs.srs.errors import NotFoundError

# Load environment
load_dotenv()

# Configuration
DEFAULT_DB_NAME = "aisrs"
KNOWLEDGE_UNITS_COLLECTION = "knowledge_units"
LESSONS_COLLECTION = "lessons"

# Global connection pool (reused across requests)
_client: Optional[MongoClient] = None


# ---- Connection Management ----

def get_database() -> Database:
    """
    Get the MongoDB database holding knowledge units and lessons.

    Uses a persistent connection pool that's reused across requests.

    Returns:
        MongoDB database object
    """
    global _client

    if _client is None:
        mongo_uri = os.getenv("MONGO_URI")
        if not mongo_uri:
            raise ValueError("MONGO_URI not found in environment variables")

        _client = MongoClient(
            mongo_uri,
            maxPoolSize=10,  # Connection pool size
            minPoolSize=1,   # Keep at least 1 connection alive
            maxIdleTimeMS=60000  # Keep connections alive for 60 seconds
        )
    return _client[os.getenv("MONGO_DB_NAME", DEFAULT_DB_NAME)]


def ensure_indexes(database: Optional[Database] = None) -> None:
    """Create the lookup indexes used by the repository (idempotent)."""
    database = database if database is not None else get_database()
    database[KNOWLEDGE_UNITS_COLLECTION].create_index(
        [("owner_id", ASCENDING), ("ku_id", ASCENDING)], unique=True
    )
    # One Kanji unit per character and owner; backs the ensure_stub upsert
    database[KNOWLEDGE_UNITS_COLLECTION].create_index(
        [("owner_id", ASCENDING), ("type", ASCENDING), ("content", ASCENDING)],
        unique=True,
        partialFilterExpression={"type": KnowledgeUnitType.KANJI.value}
    )
    database[LESSONS_COLLECTION].create_index(
        [("owner_id", ASCENDING), ("ku_id", ASCENDING)]
    )


# ---- Repository ----

class KnowledgeRepo:
    """
    Fact store backed by the knowledge_units and lessons collections.

    Every query is scoped by owner_id; a unit owned by someone else is
    reported as not found.
    """

    def __init__(self, database: Optional[Database] = None):
        self._database = database

    @property
    def database(self) -> Database:
        if self._database is None:
            self._database = get_database()
        return self._database

    @property
    def units(self) -> Collection:
        return self.database[KNOWLEDGE_UNITS_COLLECTION]

    @property
    def lessons(self) -> Collection:
        return self.database[LESSONS_COLLECTION]

    def get_fact(self, owner_id: str, fact_id: str) -> KnowledgeUnit:
        doc = self.units.find_one({"ku_id": fact_id, "owner_id": owner_id}, {"_id": 0})
        if doc is None:
            raise NotFoundError(f"Knowledge unit {fact_id} not found")
        return KnowledgeUnit.model_validate(doc)

    def get_lesson(self, owner_id: str, fact_id: str) -> Optional[Lesson]:
        doc = self.lessons.find_one({"ku_id": fact_id, "owner_id": owner_id}, {"_id": 0})
        if doc is None:
            return None
        return Lesson.model_validate(doc)

    def mark_mastered(self, owner_id: str, fact_id: str) -> None:
        result = self.units.update_one(
            {"ku_id": fact_id, "owner_id": owner_id},
            {"$set": {"status": KnowledgeUnitStatus.MASTERED.value}}
        )
        if result.matched_count == 0:
            logger.warning(f"[MONGO] mark_mastered: {fact_id} not found for {owner_id}")

    def ensure_stub(self, owner_id: str, identifier: str, metadata: dict[str, Any]) -> str:
        """
        Find the Kanji unit for `identifier`, creating a stub if missing.

        The upsert only sets fields on insert, so an existing unit keeps its
        data and status.

        Args:
            owner_id: Learner
            identifier: The kanji character (e.g. "食")
            metadata: Optional meaning/onyomi/kunyomi for a new stub

        Returns:
            ku_id of the existing or new unit
        """
        stub = KnowledgeUnit(
            ku_id=str(uuid.uuid4()),
            owner_id=owner_id,
            type=KnowledgeUnitType.KANJI,
            content=identifier,
            data={
                "meaning": metadata.get("meaning", "..."),
                "onyomi": metadata.get("onyomi", []),
                "kunyomi": metadata.get("kunyomi", []),
            },
            personal_notes="Auto-generated component",
            status=KnowledgeUnitStatus.LEARNING,
            facet_count=0,
            created_at=datetime.now(timezone.utc)
        )
        insert_fields = stub.model_dump()
        for key in ("owner_id", "type", "content"):
            insert_fields.pop(key)

        query = {"owner_id": owner_id, "type": KnowledgeUnitType.KANJI.value, "content": identifier}
        try:
            doc = self.units.find_one_and_update(
                query,
                {"$setOnInsert": insert_fields},
                upsert=True,
                return_document=ReturnDocument.AFTER,
                projection={"_id": 0, "ku_id": 1}
            )
        except DuplicateKeyError:
            # Lost the insert race to another upsert; its unit is the one to use
            doc = self.units.find_one(query, {"_id": 0, "ku_id": 1})
            if doc is None:
                raise
        if doc["ku_id"] == stub.ku_id:
            logger.info(f"[MONGO] Created kanji stub {identifier} ({stub.ku_id})")
        return doc["ku_id"]

    def add_facets(self, owner_id: str, fact_id: str, count: int) -> None:
        """
        Adjust a unit's facet counter; adding facets moves it to 'reviewing'.
        """
        update: dict[str, Any] = {"$inc": {"facet_count": count}}
        if count > 0:
            update["$set"] = {"status": KnowledgeUnitStatus.REVIEWING.value}

        result = self.units.update_one({"ku_id": fact_id, "owner_id": owner_id}, update)
        if result.matched_count == 0:
            raise NotFoundError(f"Knowledge unit {fact_id} not found")
        logger.debug(f"[MONGO] {fact_id}: facet_count {count:+d}")
