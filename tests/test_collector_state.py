"""
Tests for tools/collector_state.py — window registry and Q&A cooldowns.
"""

from models.narration import WindowKind
from tools.collector_state import QA_COOLDOWN_SECONDS, CollectorState


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Window:
    def __init__(self, channel_id):
        self.channel_id = channel_id


class TestWindows:
    def test_try_open_is_check_and_set(self):
        state = CollectorState()
        assert state.try_open(WindowKind.ACTION, "1", Window("10")) is True
        assert state.try_open(WindowKind.ACTION, "1", Window("10")) is False
        assert state.open_count == 1

    def test_kinds_are_independent(self):
        state = CollectorState()
        assert state.try_open(WindowKind.ACTION, "1", Window("10"))
        assert state.try_open(WindowKind.EVENT, "1", Window("11"))
        assert state.open_count == 2

    def test_authors_are_independent(self):
        state = CollectorState()
        assert state.try_open(WindowKind.ACTION, "1", Window("10"))
        assert state.try_open(WindowKind.ACTION, "2", Window("10"))

    def test_ids_normalized_to_str(self):
        state = CollectorState()
        state.try_open(WindowKind.ACTION, 1, Window("10"))
        assert state.has_open(WindowKind.ACTION, "1")

    def test_find_for_channel(self):
        state = CollectorState()
        window = Window("10")
        state.try_open(WindowKind.ACTION, "1", window)
        assert state.find_for_channel("1", 10) is window
        assert state.find_for_channel("1", "99") is None
        assert state.find_for_channel("2", "10") is None

    def test_close_allows_reopen(self):
        state = CollectorState()
        window = Window("10")
        state.try_open(WindowKind.ACTION, "1", window)
        assert state.close(WindowKind.ACTION, "1") is window
        assert state.close(WindowKind.ACTION, "1") is None
        assert state.try_open(WindowKind.ACTION, "1", Window("10"))

    def test_snapshot_is_a_copy(self):
        state = CollectorState()
        state.try_open(WindowKind.ACTION, "1", Window("10"))
        snapshot = state.windows_snapshot
        snapshot.clear()
        assert state.open_count == 1


class TestCooldowns:
    def test_default_is_ten_minutes(self):
        assert QA_COOLDOWN_SECONDS == 600

    def test_second_start_rejected_until_expiry(self):
        clock = FakeClock()
        state = CollectorState(cooldown_seconds=600, clock=clock)
        assert state.try_start_cooldown("1") is True
        assert state.is_cooling_down("1")

        clock.now += 599
        assert state.try_start_cooldown("1") is False

        clock.now += 1
        assert not state.is_cooling_down("1")
        assert state.try_start_cooldown("1") is True

    def test_cooldowns_per_author(self):
        state = CollectorState(clock=FakeClock())
        state.try_start_cooldown("1")
        assert not state.is_cooling_down("2")
        assert state.cooldown_count == 1
