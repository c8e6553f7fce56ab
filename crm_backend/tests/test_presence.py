import pytest

from crm_backend.websocket.presence import PresenceTracker


@pytest.mark.unit
class TestPresenceTracker:

    def test_first_connection_comes_online(self):
        tracker = PresenceTracker()
        assert tracker.connect("u1") is True
        assert tracker.connect("u1") is False
        assert tracker.connection_count("u1") == 2
        assert tracker.snapshot() == ["u1"]

    def test_offline_only_after_last_connection(self):
        tracker = PresenceTracker()
        tracker.connect("u1")
        tracker.connect("u1")

        assert tracker.disconnect("u1") is False
        assert tracker.is_online("u1")

        assert tracker.disconnect("u1") is True
        assert not tracker.is_online("u1")
        assert tracker.snapshot() == []

    def test_disconnect_unknown_user_is_ignored(self):
        tracker = PresenceTracker()
        assert tracker.disconnect("ghost") is False
        assert tracker.snapshot() == []

    def test_snapshot_is_sorted(self):
        tracker = PresenceTracker()
        for user in ["u3", "u1", "u2"]:
            tracker.connect(user)
        assert tracker.snapshot() == ["u1", "u2", "u3"]
