"""Time entry store - persistence for time entries."""
from datetime import datetime, timezone
from typing import Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.time_entry import EntityType, TimeEntry
from app.utils.timestamps import from_us, to_us


class TimeEntryStore:
    """CRUD over the time_entries collection.

    Timestamps are stored as integer microseconds since the epoch.
    """

    def __init__(self, db):
        """Initialize store with database connection."""
        self.db = db
        self.time_entries = db[settings.time_entries_collection]

    def _doc_to_entry(self, doc: dict) -> TimeEntry:
        """
        Convert database document to TimeEntry model.
        """
        end_time = doc.get("end_time")
        return TimeEntry(
            _id=str(doc["_id"]),
            entity_type=doc["entity_type"],
            entity_id=doc["entity_id"],
            person_id=doc.get("person_id"),
            description=doc.get("description"),
            start_time=from_us(doc["start_time"]),
            end_time=from_us(end_time) if end_time is not None else None,
            duration_us=doc.get("duration_us"),
            is_running=doc.get("is_running", False),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    def _object_id(self, entry_id: str) -> ObjectId:
        try:
            return ObjectId(entry_id)
        except (InvalidId, TypeError):
            raise NotFoundError("Time entry not found")

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def create(
        self,
        entity_type: EntityType,
        entity_id: str,
        start_time: Optional[int],
        end_time: Optional[int] = None,
        duration_us: Optional[int] = None,
        person_id: Optional[str] = None,
        description: Optional[str] = None,
        is_running: bool = False,
    ) -> TimeEntry:
        """
        Create a time entry.

        For a stopped entry, a missing duration is derived from the interval
        and a missing end time from start + duration.

        Args:
            entity_type: Owning hierarchy (task or project)
            entity_id: Owning task or project ID
            start_time: Start, microseconds since epoch
            end_time: Optional end, microseconds since epoch
            duration_us: Optional explicit duration
            person_id: Optional person who logged the time
            description: Optional description
            is_running: Whether this is a running timer

        Returns:
            Created time entry

        Raises:
            ValidationError: If required fields are missing or the interval is invalid
            ConflictError: If the database already holds a running entry for the entity
        """
        if entity_type is None:
            raise ValidationError("entity_type is required")
        if not entity_id:
            raise ValidationError("entity_id is required")
        if start_time is None:
            raise ValidationError("start_time is required")
        if duration_us is not None and duration_us < 0:
            raise ValidationError("duration_us must be non-negative")

        if is_running:
            if end_time is not None or duration_us is not None:
                raise ValidationError("A running entry cannot have an end time or duration")
        else:
            if end_time is not None and end_time < start_time:
                raise ValidationError("end_time cannot be before start_time")
            if duration_us is None and end_time is not None:
                duration_us = end_time - start_time
            if end_time is None and duration_us is not None:
                end_time = start_time + duration_us
            if end_time is None:
                raise ValidationError("end_time or a duration is required")

        now = self._now()
        entry_doc = {
            "entity_type": EntityType(entity_type).value,
            "entity_id": str(entity_id),
            "person_id": person_id,
            "description": description,
            "start_time": start_time,
            "end_time": end_time,
            "duration_us": duration_us,
            "is_running": is_running,
            "created_at": now,
            "updated_at": now,
        }

        try:
            result = await self.time_entries.insert_one(entry_doc)
        except DuplicateKeyError:
            raise ConflictError("A timer is already running for this entity")
        entry_doc["_id"] = result.inserted_id

        return self._doc_to_entry(entry_doc)

    async def get(self, entry_id: str) -> TimeEntry:
        """
        Get a time entry by ID.

        Raises:
            NotFoundError: If entry not found
        """
        doc = await self.time_entries.find_one({"_id": self._object_id(entry_id)})
        if not doc:
            raise NotFoundError("Time entry not found")
        return self._doc_to_entry(doc)

    async def update(
        self,
        entry_id: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        duration_us: Optional[int] = None,
        description: Optional[str] = None,
        person_id: Optional[str] = None,
    ) -> TimeEntry:
        """
        Partially update a time entry. None means "leave unchanged".

        When the start or end time changes on a stopped entry and no explicit
        duration is given, the duration is recomputed from the interval.
        Otherwise an existing duration (possibly a manual override) is kept.

        Args:
            entry_id: Time entry ID
            start_time: New start, microseconds since epoch
            end_time: New end, microseconds since epoch
            duration_us: Explicit duration override
            description: New description
            person_id: New person ID

        Returns:
            Updated time entry

        Raises:
            NotFoundError: If entry not found
            ValidationError: If the resulting interval is invalid
        """
        object_id = self._object_id(entry_id)
        existing = await self.time_entries.find_one({"_id": object_id})
        if not existing:
            raise NotFoundError("Time entry not found")

        update_doc = {"updated_at": self._now()}

        if description is not None:
            update_doc["description"] = description
        if person_id is not None:
            update_doc["person_id"] = person_id

        if existing.get("is_running"):
            if end_time is not None or duration_us is not None:
                raise ValidationError("Cannot set end time or duration on a running timer; stop it first")
            if start_time is not None:
                update_doc["start_time"] = start_time
        else:
            final_start = start_time if start_time is not None else existing["start_time"]
            final_end = end_time if end_time is not None else existing.get("end_time")

            if final_end is not None and final_end < final_start:
                raise ValidationError("end_time cannot be before start_time")
            if duration_us is not None and duration_us < 0:
                raise ValidationError("duration_us must be non-negative")

            if start_time is not None:
                update_doc["start_time"] = start_time
            if end_time is not None:
                update_doc["end_time"] = end_time

            if duration_us is not None:
                update_doc["duration_us"] = duration_us
            elif (start_time is not None or end_time is not None) and final_end is not None:
                update_doc["duration_us"] = final_end - final_start

        updated_doc = await self.time_entries.find_one_and_update(
            {"_id": object_id},
            {"$set": update_doc},
            return_document=ReturnDocument.AFTER,
        )
        if not updated_doc:
            raise NotFoundError("Time entry not found")

        return self._doc_to_entry(updated_doc)

    async def close(self, entry: TimeEntry, end_time: int) -> Optional[TimeEntry]:
        """
        Stop a running entry at ``end_time``.

        The update only applies while the entry is still running, so an
        entry is closed at most once.

        Returns:
            The closed entry, or None if it was no longer running
        """
        duration = max(0, end_time - to_us(entry.start_time))
        updated_doc = await self.time_entries.find_one_and_update(
            {"_id": self._object_id(entry.id), "is_running": True},
            {
                "$set": {
                    "end_time": end_time,
                    "duration_us": duration,
                    "is_running": False,
                    "updated_at": self._now(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not updated_doc:
            return None
        return self._doc_to_entry(updated_doc)

    async def delete(self, entry_id: str) -> dict:
        """
        Delete a time entry. Running entries may be deleted too.

        Returns:
            Dictionary with deleted_count

        Raises:
            NotFoundError: If entry not found
        """
        result = await self.time_entries.delete_one({"_id": self._object_id(entry_id)})
        if result.deleted_count == 0:
            raise NotFoundError("Time entry not found")
        return {"deleted_count": result.deleted_count}

    async def list_by_entity(self, entity_type: EntityType, entity_id: str) -> list[TimeEntry]:
        """List all entries for one entity, newest first."""
        return await self.list_by_entities(entity_type, [entity_id])

    async def list_by_entities(
        self,
        entity_type: EntityType,
        entity_ids: Iterable[str],
    ) -> list[TimeEntry]:
        """List all entries for a set of entities of one type, newest first."""
        ids = list(entity_ids)
        if not ids:
            return []
        cursor = self.time_entries.find(
            {"entity_type": EntityType(entity_type).value, "entity_id": {"$in": ids}},
            sort=[("start_time", DESCENDING)],
        )
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]

    async def find_running(self, entity_type: EntityType, entity_id: str) -> Optional[TimeEntry]:
        """Get the running entry for an entity, if any."""
        doc = await self.time_entries.find_one({
            "entity_type": EntityType(entity_type).value,
            "entity_id": entity_id,
            "is_running": True,
        })
        if not doc:
            return None
        return self._doc_to_entry(doc)

    async def list_all_running(self) -> list[TimeEntry]:
        """List every running entry, newest first."""
        cursor = self.time_entries.find(
            {"is_running": True},
            sort=[("start_time", DESCENDING)],
        )
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]
