from datetime import date, datetime, timedelta

import pytest

from engine import timezone_utils
from engine.models import Event, EventValidationError, Recurrence
from engine.recurrence import RecurrenceExpander
from engine.timezone_utils import local_naive_to_utc, utc_to_local_naive

from helpers import utc


@pytest.fixture
def expander():
    return RecurrenceExpander()


def starts(occurrences):
    return [o.start for o in occurrences]


class TestExpand:
    def test_weekly_until_is_inclusive(self, expander):
        event = Event.create(
            "Piano lesson",
            utc(2024, 1, 1, 10, 0),
            utc(2024, 1, 1, 11, 0),
            recurrence="weekly",
            until=date(2024, 1, 22),
            id="piano",
        )
        result = expander.expand(event, utc(2024, 1, 1), utc(2024, 1, 31, 23, 59, 59))

        assert starts(result) == [
            utc(2024, 1, 1, 10, 0),
            utc(2024, 1, 8, 10, 0),
            utc(2024, 1, 15, 10, 0),
            utc(2024, 1, 22, 10, 0),
        ]
        for occurrence in result:
            assert occurrence.end - occurrence.start == timedelta(hours=1)
            assert occurrence.id == "piano"
            assert occurrence.title == "Piano lesson"

    def test_non_recurring_passes_through(self, expander):
        event = Event.create("Dentist", utc(2024, 5, 2, 9), utc(2024, 5, 2, 10))
        result = expander.expand(event, utc(2024, 1, 1), utc(2024, 1, 31))
        assert result == [event]
        assert result[0] is event

    def test_window_bounds_are_inclusive(self, expander):
        event = Event.create("Walk", utc(2024, 1, 1, 10), utc(2024, 1, 1, 11), recurrence="daily")
        result = expander.expand(event, utc(2024, 1, 2, 10), utc(2024, 1, 4, 10))
        assert starts(result) == [utc(2024, 1, 2, 10), utc(2024, 1, 3, 10), utc(2024, 1, 4, 10)]

    def test_occurrences_before_anchor_are_not_generated(self, expander):
        event = Event.create("Walk", utc(2024, 1, 20, 10), utc(2024, 1, 20, 11), recurrence="daily")
        result = expander.expand(event, utc(2024, 1, 1), utc(2024, 1, 21, 23))
        assert starts(result) == [utc(2024, 1, 20, 10), utc(2024, 1, 21, 10)]

    def test_monthly_clamps_to_last_day(self, expander):
        event = Event.create("Rent", utc(2024, 1, 31, 9), utc(2024, 1, 31, 9, 30), recurrence="monthly")
        result = expander.expand(event, utc(2024, 1, 1), utc(2024, 4, 30, 23, 59))
        assert [o.start.date() for o in result] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]
        assert all(o.start.hour == 9 for o in result)

    def test_monthly_on_30th(self, expander):
        event = Event.create("Report", utc(2023, 1, 30, 8), utc(2023, 1, 30, 9), recurrence="monthly")
        result = expander.expand(event, utc(2023, 1, 1), utc(2023, 3, 31, 23))
        assert [o.start.date() for o in result] == [
            date(2023, 1, 30),
            date(2023, 2, 28),
            date(2023, 3, 30),
        ]

    def test_yearly_leap_day(self, expander):
        event = Event.create("Leap party", date(2024, 2, 29), all_day=True, recurrence="yearly")
        result = expander.expand(event, utc(2024, 1, 1), utc(2028, 12, 31))
        assert [o.start.date() for o in result] == [
            date(2024, 2, 29),
            date(2025, 2, 28),
            date(2026, 2, 28),
            date(2027, 2, 28),
            date(2028, 2, 29),
        ]

    def test_all_day_daily(self, expander):
        event = Event.create("Camp", date(2024, 7, 1), all_day=True, recurrence="daily", until=date(2024, 7, 3))
        result = expander.expand(event, utc(2024, 6, 1), utc(2024, 7, 31))
        assert [o.start for o in result] == [utc(2024, 7, 1), utc(2024, 7, 2), utc(2024, 7, 3)]
        assert all(o.start == o.end for o in result)
        assert all(o.all_day for o in result)

    def test_keeps_local_time_across_dst(self, expander):
        timezone_utils.set_timezone("America/Chicago")
        start = local_naive_to_utc(datetime(2024, 3, 4, 10, 0))
        event = Event.create("Coffee", start, start + timedelta(hours=1), recurrence="weekly")
        result = expander.expand(
            event,
            local_naive_to_utc(datetime(2024, 3, 1)),
            local_naive_to_utc(datetime(2024, 3, 20)),
        )
        assert [utc_to_local_naive(o.start) for o in result] == [
            datetime(2024, 3, 4, 10, 0),
            datetime(2024, 3, 11, 10, 0),
            datetime(2024, 3, 18, 10, 0),
        ]
        # Same wall-clock time, different UTC offsets
        assert result[0].start.hour == 16
        assert result[1].start.hour == 15

    def test_empty_when_window_before_event(self, expander):
        event = Event.create("Later", utc(2025, 1, 1, 10), utc(2025, 1, 1, 11), recurrence="daily")
        assert expander.expand(event, utc(2024, 1, 1), utc(2024, 12, 31)) == []


class TestValidation:
    def test_missing_start_rejected(self, expander):
        event = Event(id="x", title="Broken", start=None, end=None, recurrence=Recurrence.DAILY)
        with pytest.raises(EventValidationError):
            expander.expand(event, utc(2024, 1, 1), utc(2024, 1, 31))

    def test_end_before_start_rejected(self, expander):
        event = Event(
            id="x", title="Backwards",
            start=utc(2024, 1, 2, 10), end=utc(2024, 1, 2, 9),
            recurrence=Recurrence.DAILY,
        )
        with pytest.raises(EventValidationError):
            expander.expand(event, utc(2024, 1, 1), utc(2024, 1, 31))

    def test_reversed_window_rejected(self, expander):
        event = Event.create("Walk", utc(2024, 1, 1, 10), utc(2024, 1, 1, 11), recurrence="daily")
        with pytest.raises(ValueError):
            expander.expand(event, utc(2024, 2, 1), utc(2024, 1, 1))


class TestBuildRrule:
    def test_plain_frequency(self):
        rule = RecurrenceExpander.build_rrule(Recurrence.WEEKLY, datetime(2024, 1, 1, 10))
        assert rule == {'freq': 'WEEKLY'}

    def test_until_is_end_of_day(self):
        rule = RecurrenceExpander.build_rrule(Recurrence.DAILY, datetime(2024, 1, 1, 10), date(2024, 1, 5))
        assert rule['until'] == datetime(2024, 1, 5, 23, 59, 59)

    def test_none_is_rejected(self):
        with pytest.raises(ValueError):
            RecurrenceExpander.build_rrule(Recurrence.NONE, datetime(2024, 1, 1))
