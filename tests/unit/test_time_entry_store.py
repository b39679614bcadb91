"""Tests for TimeEntryStore."""
import pytest
from bson import ObjectId
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import DuplicateKeyError

START = 1_704_067_200_000_000  # 2024-01-01T00:00:00Z
HOUR = 3_600_000_000


@pytest.mark.asyncio
class TestTimeEntryStoreCreate:
    """Tests for creating time entries."""

    async def test_create_derives_duration_from_interval(self, mock_db):
        """Test a stopped entry gets end - start as its duration."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, end_time=START + 90 * 60_000_000)

        assert entry.duration_us == 5_400_000_000
        assert entry.is_running is False
        assert ObjectId.is_valid(entry.id)

    async def test_create_derives_end_from_duration(self, mock_db):
        """Test a stopped entry with only a duration gets start + duration as its end."""
        from app.services.time_entry_store import TimeEntryStore
        from app.utils.timestamps import to_us

        store = TimeEntryStore(mock_db)
        entry = await store.create("project", "p1", start_time=START, duration_us=HOUR)

        assert to_us(entry.end_time) == START + HOUR
        assert entry.duration_us == HOUR

    async def test_create_explicit_duration_wins(self, mock_db):
        """Test an explicit duration is kept even if it disagrees with the interval."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create(
            "task", "t1", start_time=START, end_time=START + 2 * HOUR, duration_us=HOUR,
        )

        assert entry.duration_us == HOUR

    async def test_create_running_entry(self, mock_db):
        """Test a running entry has no end time or duration."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        assert entry.is_running is True
        assert entry.end_time is None
        assert entry.duration_us is None

    async def test_create_end_before_start_fails(self, mock_db):
        """Test that an end time before the start time is rejected."""
        from app.errors import ValidationError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        with pytest.raises(ValidationError, match="before start_time"):
            await store.create("task", "t1", start_time=START, end_time=START - 1)

        assert await mock_db["time_entries"].count_documents({}) == 0

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"entity_type": None, "entity_id": "t1", "start_time": START, "duration_us": 1}, "entity_type"),
            ({"entity_type": "task", "entity_id": "", "start_time": START, "duration_us": 1}, "entity_id"),
            ({"entity_type": "task", "entity_id": "t1", "start_time": None, "duration_us": 1}, "start_time"),
            ({"entity_type": "task", "entity_id": "t1", "start_time": START}, "end_time or a duration"),
        ],
    )
    async def test_create_missing_fields_fail(self, mock_db, kwargs, message):
        """Test that required fields are enforced."""
        from app.errors import ValidationError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        with pytest.raises(ValidationError, match=message):
            await store.create(**kwargs)

    async def test_create_duplicate_running_is_conflict(self):
        """Test the database uniqueness guard surfaces as ConflictError."""
        from app.errors import ConflictError
        from app.services.time_entry_store import TimeEntryStore

        mock_db = MagicMock()
        mock_entries = AsyncMock()
        mock_db.__getitem__.return_value = mock_entries
        mock_entries.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        store = TimeEntryStore(mock_db)

        with pytest.raises(ConflictError):
            await store.create("task", "t1", start_time=START, is_running=True)


@pytest.mark.asyncio
class TestTimeEntryStoreUpdate:
    """Tests for updating time entries."""

    async def test_update_end_time_recomputes_duration(self, mock_db):
        """Test changing end time recomputes the duration."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, end_time=START + HOUR)

        updated = await store.update(entry.id, end_time=START + 3 * HOUR)

        assert updated.duration_us == 3 * HOUR

    async def test_update_start_time_recomputes_duration(self, mock_db):
        """Test changing start time recomputes the duration."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, end_time=START + 2 * HOUR)

        updated = await store.update(entry.id, start_time=START + HOUR)

        assert updated.duration_us == HOUR

    async def test_update_description_keeps_manual_duration(self, mock_db):
        """Test that editing other fields keeps a manual duration override."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create(
            "task", "t1", start_time=START, end_time=START + 2 * HOUR, duration_us=HOUR,
        )

        updated = await store.update(entry.id, description="Reviewed", person_id="person-1")

        assert updated.duration_us == HOUR
        assert updated.description == "Reviewed"
        assert updated.person_id == "person-1"

    async def test_update_explicit_duration(self, mock_db):
        """Test an explicit duration override is stored as given."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, end_time=START + HOUR)

        updated = await store.update(entry.id, end_time=START + 2 * HOUR, duration_us=42)

        assert updated.duration_us == 42

    async def test_update_end_before_start_fails(self, mock_db):
        """Test that the resulting interval is validated."""
        from app.errors import ValidationError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, end_time=START + HOUR)

        with pytest.raises(ValidationError):
            await store.update(entry.id, start_time=START + 2 * HOUR)

    async def test_update_running_entry_rejects_end_time(self, mock_db):
        """Test a running entry cannot be closed through an edit."""
        from app.errors import ValidationError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        with pytest.raises(ValidationError, match="running"):
            await store.update(entry.id, end_time=START + HOUR)

    async def test_update_running_entry_start_time(self, mock_db):
        """Test a running entry's start time can be corrected."""
        from app.services.time_entry_store import TimeEntryStore
        from app.utils.timestamps import to_us

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        updated = await store.update(entry.id, start_time=START - HOUR)

        assert to_us(updated.start_time) == START - HOUR
        assert updated.is_running is True
        assert updated.duration_us is None

    async def test_update_not_found(self, mock_db):
        """Test updating an unknown entry fails."""
        from app.errors import NotFoundError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        with pytest.raises(NotFoundError, match="Time entry not found"):
            await store.update(str(ObjectId()), description="x")

    async def test_update_malformed_id_is_not_found(self, mock_db):
        """Test that malformed ids are reported as not found."""
        from app.errors import NotFoundError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        with pytest.raises(NotFoundError):
            await store.update("not-an-id", description="x")


@pytest.mark.asyncio
class TestTimeEntryStoreDelete:
    """Tests for deleting time entries."""

    async def test_delete_entry(self, mock_db):
        """Test deleting an entry removes it."""
        from app.errors import NotFoundError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, duration_us=HOUR)

        result = await store.delete(entry.id)

        assert result["deleted_count"] == 1
        with pytest.raises(NotFoundError):
            await store.get(entry.id)

    async def test_delete_running_entry(self, mock_db):
        """Test running entries can be deleted outright."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        await store.delete(entry.id)

        assert await store.find_running("task", "t1") is None

    async def test_delete_not_found(self, mock_db):
        """Test deleting an unknown entry fails."""
        from app.errors import NotFoundError
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        with pytest.raises(NotFoundError, match="Time entry not found"):
            await store.delete(str(ObjectId()))


@pytest.mark.asyncio
class TestTimeEntryStoreQueries:
    """Tests for listing and running-timer queries."""

    async def test_list_by_entity_newest_first(self, mock_db):
        """Test entries are scoped to one entity and sorted newest first."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        older = await store.create("task", "t1", start_time=START, duration_us=HOUR)
        newer = await store.create("task", "t1", start_time=START + 5 * HOUR, duration_us=HOUR)
        await store.create("task", "t2", start_time=START, duration_us=HOUR)
        await store.create("project", "t1", start_time=START, duration_us=HOUR)

        entries = await store.list_by_entity("task", "t1")

        assert [e.id for e in entries] == [newer.id, older.id]

    async def test_list_by_entities_empty(self, mock_db):
        """Test an empty id list returns nothing without querying."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)

        assert await store.list_by_entities("task", []) == []

    async def test_find_running(self, mock_db):
        """Test finding the running entry for an entity."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        await store.create("task", "t1", start_time=START, duration_us=HOUR)
        running = await store.create("task", "t1", start_time=START + HOUR, is_running=True)

        found = await store.find_running("task", "t1")

        assert found.id == running.id
        assert await store.find_running("task", "t2") is None

    async def test_list_all_running(self, mock_db):
        """Test listing running entries across entities."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        await store.create("task", "t1", start_time=START, is_running=True)
        await store.create("project", "p1", start_time=START, is_running=True)
        await store.create("task", "t2", start_time=START, duration_us=HOUR)

        running = await store.list_all_running()

        assert {(e.entity_type.value, e.entity_id) for e in running} == {("task", "t1"), ("project", "p1")}

    async def test_close_only_once(self, mock_db):
        """Test closing an entry twice only succeeds the first time."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        closed = await store.close(entry, START + HOUR)
        again = await store.close(entry, START + 2 * HOUR)

        assert closed.duration_us == HOUR
        assert closed.is_running is False
        assert again is None

    async def test_close_clamps_negative_duration(self, mock_db):
        """Test a clock behind the start time yields a zero duration."""
        from app.services.time_entry_store import TimeEntryStore

        store = TimeEntryStore(mock_db)
        entry = await store.create("task", "t1", start_time=START, is_running=True)

        closed = await store.close(entry, START - 10)

        assert closed.duration_us == 0
