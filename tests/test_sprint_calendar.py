"""
Tests for projecting sprints onto a calendar window

All schedules use an explicit Monday week start; 2024-01-01 is a Monday.
"""
from datetime import datetime

import pandas as pd
import pytest

from models.sprint import Sprint
from modules.sprint_calendar import build_sprint_schedule, get_sprints_for_date, sprint_window
from utils.date_utils import get_week_bounds, parse_plan_length_days, start_of_local_day

from conftest import make_sprints


def schedule(sprints, start, end, week_start=0):
    return build_sprint_schedule(sprints, start, end, week_start=week_start)


class TestBuildSprintSchedule:

    def test_every_day_of_the_sprint_is_covered(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 1, 31))

        beta_days = [key for key, entries in result.items() if any(e.sprint_id == 2 for e in entries)]
        assert beta_days == [f"2024-01-{day:02d}" for day in range(15, 29)]
        assert len(result) == 31
        assert all(len(entries) == 1 for entries in result.values())

    def test_undated_sprint_is_skipped(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 3, 1))

        assert all(entry.sprint_id != 4 for entries in result.values() for entry in entries)

    def test_boundary_flags(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 1, 31))

        first = result['2024-01-15'][0]
        middle = result['2024-01-17'][0]
        last = result['2024-01-28'][0]
        assert first.is_start and not first.is_end
        assert not middle.is_start and not middle.is_end
        assert last.is_end and not last.is_start
        assert middle.label == "Beta"
        assert middle.state == "active"

    def test_segments_are_clipped_to_the_week(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 1, 31))

        entry = result['2024-01-17'][0]
        assert entry.start_date == datetime(2024, 1, 15)
        assert entry.end_date == datetime(2024, 1, 21)
        assert entry.planned_start == datetime(2024, 1, 15)
        assert entry.planned_end == datetime(2024, 1, 28)

    def test_segments_follow_week_start(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 1, 31), week_start=6)

        entry = result['2024-01-17'][0]
        assert entry.start_date == datetime(2024, 1, 15)
        assert entry.end_date == datetime(2024, 1, 20)

    def test_sprint_is_clipped_to_the_window(self):
        result = schedule(make_sprints(), datetime(2024, 1, 10), datetime(2024, 1, 31))

        assert '2024-01-09' not in result
        opening = result['2024-01-10'][0]
        assert opening.sprint_id == 1
        assert opening.start_date == datetime(2024, 1, 10)
        assert not opening.is_start

        closing = result['2024-01-31'][0]
        assert closing.sprint_id == 3
        assert closing.start_date == datetime(2024, 1, 29)
        assert closing.end_date == datetime(2024, 1, 31)
        assert not closing.is_end
        assert '2024-02-01' not in result

    def test_single_day_sprint(self):
        sprint = Sprint(id=9, planned_start=datetime(2024, 3, 5), planned_end=datetime(2024, 3, 5))
        result = schedule([sprint], datetime(2024, 3, 1), datetime(2024, 3, 31))

        assert list(result) == ['2024-03-05']
        entry = result['2024-03-05'][0]
        assert entry.is_start and entry.is_end
        assert entry.label == "Sprint 9"

    def test_end_before_start_collapses_to_one_day(self):
        sprint = Sprint(id=9, planned_start=datetime(2024, 3, 5), planned_end=datetime(2024, 3, 1))
        result = schedule([sprint], datetime(2024, 3, 1), datetime(2024, 3, 31))

        assert list(result) == ['2024-03-05']

    def test_plan_length_provides_the_end(self):
        sprint = Sprint(id=5, planned_start=datetime(2024, 3, 4), plan_length="2w")
        result = schedule([sprint], datetime(2024, 3, 1), datetime(2024, 3, 31))

        assert list(result)[0] == '2024-03-04'
        assert list(result)[-1] == '2024-03-17'
        assert len(result) == 14
        assert result['2024-03-17'][0].is_end

    def test_computed_end_is_used_when_planned_end_is_missing(self):
        sprint = Sprint(id=5, planned_start=datetime(2024, 3, 4), computed_end=datetime(2024, 3, 6))
        result = schedule([sprint], datetime(2024, 3, 1), datetime(2024, 3, 31))

        assert list(result) == ['2024-03-04', '2024-03-05', '2024-03-06']

    def test_missing_bound_is_unbounded(self):
        open_end = Sprint(id=6, planned_start=datetime(2024, 3, 28))
        open_start = Sprint(id=7, planned_end=datetime(2024, 3, 3))
        result = schedule([open_end, open_start], datetime(2024, 3, 1), datetime(2024, 3, 31))

        assert [key for key, entries in result.items() if entries[0].sprint_id == 7] == [
            '2024-03-01', '2024-03-02', '2024-03-03'
        ]
        assert [key for key, entries in result.items() if entries[0].sprint_id == 6] == [
            '2024-03-28', '2024-03-29', '2024-03-30', '2024-03-31'
        ]
        assert not result['2024-03-31'][0].is_end
        assert not result['2024-03-01'][0].is_start

    def test_entries_are_ordered_by_sprint_id(self):
        late = Sprint(id=8, label="Late", planned_start=datetime(2024, 3, 1), planned_end=datetime(2024, 3, 3))
        early = Sprint(id=2, label="Early", state="complete",
                       planned_start=datetime(2024, 3, 2), planned_end=datetime(2024, 3, 4))
        result = schedule([late, early], datetime(2024, 3, 1), datetime(2024, 3, 4))

        assert [entry.sprint_id for entry in result['2024-03-02']] == [2, 8]
        assert [entry.sprint_id for entry in result['2024-03-01']] == [8]

    def test_actual_dates_drive_dimming(self):
        sprint = Sprint(
            id=2, state="active",
            planned_start=datetime(2024, 1, 15), planned_end=datetime(2024, 1, 28),
            actual_start=datetime(2024, 1, 17, 9, 30), actual_end=datetime(2024, 1, 25, 18, 0),
        )
        result = schedule([sprint], datetime(2024, 1, 1), datetime(2024, 1, 31))

        before = result['2024-01-16'][0]
        started = result['2024-01-17'][0]
        ended = result['2024-01-25'][0]
        after = result['2024-01-26'][0]

        assert before.before_actual_start and before.is_dimmed
        assert started.is_actual_start and not started.is_dimmed
        assert started.actual_start_date == datetime(2024, 1, 17)
        assert ended.is_actual_end and not ended.after_actual_end
        assert after.after_actual_end and after.is_dimmed

    def test_complete_sprint_is_dimmed(self):
        result = schedule(make_sprints(), datetime(2024, 1, 1), datetime(2024, 1, 2))

        assert result['2024-01-01'][0].is_dimmed

    def test_accepts_backend_records(self):
        records = [{'id': 1, 'label': 'Alpha',
                    'planned_start': '2024-01-01T00:00:00', 'planned_end': '2024-01-02T00:00:00'}]
        result = schedule(records, datetime(2024, 1, 1), datetime(2024, 1, 31))

        assert list(result) == ['2024-01-01', '2024-01-02']

    def test_does_not_modify_input(self):
        sprints = make_sprints()
        before = [sprint.model_dump() for sprint in sprints]
        schedule(sprints, datetime(2024, 1, 1), datetime(2024, 2, 29))

        assert [sprint.model_dump() for sprint in sprints] == before

    def test_sprints_outside_the_window_have_no_entries(self):
        ended = Sprint(id=1, planned_start=datetime(2024, 1, 1), planned_end=datetime(2024, 1, 14))
        future = Sprint(id=2, planned_start=datetime(2024, 3, 1), planned_end=datetime(2024, 3, 14))
        open_end = Sprint(id=3, planned_start=datetime(2024, 3, 1))
        open_start = Sprint(id=4, planned_end=datetime(2024, 1, 31))

        result = schedule([ended, future, open_end, open_start], datetime(2024, 2, 1), datetime(2024, 2, 29))

        assert result == {}

    def test_inverted_window_is_empty(self):
        assert schedule(make_sprints(), datetime(2024, 1, 31), datetime(2024, 1, 1)) == {}

    def test_missing_window_bound(self):
        with pytest.raises(ValueError):
            schedule(make_sprints(), None, datetime(2024, 1, 31))

    def test_window_times_are_normalized(self):
        result = schedule(make_sprints(), datetime(2024, 1, 14, 23, 0), datetime(2024, 1, 15, 1, 0))

        assert list(result) == ['2024-01-14', '2024-01-15']


class TestSprintLookup:

    def test_get_sprints_for_date(self):
        assert [s.id for s in get_sprints_for_date(make_sprints(), datetime(2024, 1, 20, 15, 0))] == [2]
        assert get_sprints_for_date(make_sprints(), datetime(2023, 12, 1)) == []
        assert get_sprints_for_date(make_sprints(), None) == []

    def test_sprint_window_without_dates(self):
        assert sprint_window(Sprint(id=4)) is None


class TestDateUtils:

    @pytest.mark.parametrize("value, expected", [
        ("2w", 14),
        ("10d", 10),
        ("3 weeks", 21),
        ("5 Days", 5),
        ("1.5w", 10),
        ("0d", None),
        ("soon", None),
        ("", None),
        (None, None),
    ])
    def test_parse_plan_length_days(self, value, expected):
        assert parse_plan_length_days(value) == expected

    def test_start_of_local_day_converts_aware_values(self):
        stamp = pd.Timestamp("2024-01-01T23:30:00Z")

        assert start_of_local_day(stamp, tz="Asia/Tokyo") == pd.Timestamp("2024-01-02")
        assert start_of_local_day(stamp, tz="UTC") == pd.Timestamp("2024-01-01")

    def test_start_of_local_day_empty_values(self):
        assert start_of_local_day(None) is None
        assert start_of_local_day("") is None
        assert start_of_local_day(pd.NaT) is None

    def test_week_bounds(self):
        first, last = get_week_bounds(pd.Timestamp("2024-01-17"), week_start=0)

        assert first == pd.Timestamp("2024-01-15")
        assert last == pd.Timestamp("2024-01-21")
