"""Tests for the stop-all maintenance script."""
import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "stop_all_timers.py"


def load_script():
    spec = importlib.util.spec_from_file_location("stop_all_timers", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
class TestStopAllScript:
    """Tests for scripts/stop_all_timers.py."""

    async def test_stops_running_timers_with_tz_aware_client(self, mock_db, seed, monkeypatch, capsys):
        """Test the script connects like the app and closes every running timer."""
        from app.services.time_tracking_service import TimeTrackingService

        await seed(tasks=[{"_id": "t1"}])
        started = await TimeTrackingService(mock_db).start_task_timer("t1")

        script = load_script()
        client = MagicMock()
        client.__getitem__.return_value = mock_db
        client_factory = MagicMock(return_value=client)
        monkeypatch.setattr(script, "AsyncIOMotorClient", client_factory)

        await script.stop_all_timers("mongodb://example", "time_tracking")

        client_factory.assert_called_once_with("mongodb://example", tz_aware=True)
        client.__getitem__.assert_called_once_with("time_tracking")
        client.close.assert_called_once()
        entry = await TimeTrackingService(mock_db).get_entry(started.id)
        assert entry.is_running is False
        assert "Stopped 1 running timers" in capsys.readouterr().out
