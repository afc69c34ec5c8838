"""Unit tests for status derivation, the transition table and the room registry."""
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from models import CleaningStatus
from core.clock import current_day, date_filter_window, day_bounds, isoformat_utc, to_storage
from core.exceptions import UnknownRoom
from core.rooms import all_room_numbers, is_valid_room, normalize_room_number
from core.state_machine import (
    CHECK,
    FINISH,
    RESET,
    START,
    can_transition,
    derive_status,
    target_status,
)
from core.state_store import StateStore

T = datetime(2024, 5, 1, 8, 0, 0)


def _record(start=None, finish=None, checked=None):
    return SimpleNamespace(start_time=start, finish_time=finish, checked_time=checked)


class TestDeriveStatus:
    @pytest.mark.parametrize("start,finish,checked,expected", [
        (None, None, None, CleaningStatus.AVAILABLE),
        (T, None, None, CleaningStatus.IN_PROGRESS),
        (T, T, None, CleaningStatus.FINISHED),
        (None, T, None, CleaningStatus.FINISHED),
        (T, T, T, CleaningStatus.CHECKED),
        (None, T, T, CleaningStatus.CHECKED),
    ])
    def test_status_follows_timestamps(self, start, finish, checked, expected):
        assert derive_status(_record(start, finish, checked)) == expected

    def test_checked_wins_over_everything(self):
        assert derive_status(_record(None, None, T)) == CleaningStatus.CHECKED


class TestTransitions:
    def test_lifecycle_path(self):
        assert can_transition(CleaningStatus.AVAILABLE, START)
        assert can_transition(CleaningStatus.IN_PROGRESS, FINISH)
        assert can_transition(CleaningStatus.FINISHED, CHECK)

    def test_guards(self):
        assert not can_transition(CleaningStatus.IN_PROGRESS, START)
        assert not can_transition(CleaningStatus.FINISHED, FINISH)
        assert not can_transition(CleaningStatus.IN_PROGRESS, CHECK)
        assert not can_transition(CleaningStatus.CHECKED, CHECK)

    def test_reset_from_any_state(self):
        for status in CleaningStatus:
            assert can_transition(status, RESET)
        assert target_status(RESET) == CleaningStatus.AVAILABLE

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            can_transition(CleaningStatus.AVAILABLE, "teleport")


class TestRoomRegistry:
    def test_registry_is_fixed_and_padded(self):
        rooms = all_room_numbers()
        assert len(rooms) == 46
        assert len(set(rooms)) == 46
        assert all(len(room) == 3 and room.isdigit() for room in rooms)
        assert rooms[0] == "001"

    def test_numeric_input_is_padded(self):
        assert normalize_room_number(7) == "007"
        assert normalize_room_number("7") == "007"
        assert normalize_room_number("101") == "101"

    @pytest.mark.parametrize("value", ["999", "008", "abc", "", None, "206"])
    def test_unknown_rooms_are_rejected(self, value):
        with pytest.raises(UnknownRoom):
            normalize_room_number(value)
        assert not is_valid_room(value)


class TestClock:
    def test_current_day_uses_fixed_zone(self):
        # 20:00 UTC is 03:00 next day in Phnom Penh (UTC+7)
        assert current_day("Asia/Phnom_Penh", datetime(2024, 5, 1, 20, 0)) == date(2024, 5, 2)
        assert current_day("UTC", datetime(2024, 5, 1, 20, 0)) == date(2024, 5, 1)

    def test_day_bounds_are_utc(self):
        start, end = day_bounds(date(2024, 5, 2), "Asia/Phnom_Penh")
        assert start == datetime(2024, 5, 1, 17, 0)
        assert end == datetime(2024, 5, 2, 17, 0)

    def test_naive_input_is_local_time(self):
        assert to_storage(datetime(2024, 5, 2, 9, 0), "Asia/Phnom_Penh") == datetime(2024, 5, 2, 2, 0)

    def test_isoformat_has_offset(self):
        assert isoformat_utc(datetime(2024, 5, 2, 2, 0)) == "2024-05-02T02:00:00+00:00"
        assert isoformat_utc(None) is None

    def test_date_filters(self):
        now = datetime(2024, 5, 15, 5, 0)  # Wednesday, local noon
        assert date_filter_window("today", "Asia/Phnom_Penh", now) == (date(2024, 5, 15), date(2024, 5, 16))
        assert date_filter_window("yesterday", "Asia/Phnom_Penh", now) == (date(2024, 5, 14), date(2024, 5, 15))
        assert date_filter_window("this_week", "Asia/Phnom_Penh", now) == (date(2024, 5, 13), date(2024, 5, 20))
        assert date_filter_window("this_month", "Asia/Phnom_Penh", now) == (date(2024, 5, 1), date(2024, 6, 1))
        assert date_filter_window("all", "Asia/Phnom_Penh", now) is None
        with pytest.raises(ValueError):
            date_filter_window("last_decade", "Asia/Phnom_Penh", now)

    def test_december_rolls_into_next_year(self):
        now = datetime(2024, 12, 20, 5, 0)
        assert date_filter_window("this_month", "Asia/Phnom_Penh", now) == (date(2024, 12, 1), date(2025, 1, 1))

    def test_unknown_filter_lists_the_known_ones(self):
        with pytest.raises(ValueError, match="this_week"):
            date_filter_window("fortnight", "Asia/Phnom_Penh")


class TestStoredStatus:
    def test_store_writes_the_target_status(self, db):
        day = date(2024, 5, 1)
        started = StateStore.apply_start(db, "007", day, "alice").record
        assert started.status == target_status(START).value
        finished = StateStore.apply_finish(db, "007", "alice").record
        assert finished.status == target_status(FINISH).value
        checked = StateStore.apply_check(db, "007", "sup").record
        assert checked.status == target_status(CHECK).value
        reset = StateStore.reset_cleaning(db, "007").record
        assert reset.status == target_status(RESET).value
