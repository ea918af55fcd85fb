"""
Event aggregation for the calendar view.

Merges stored events, their expanded recurrences and the generated holidays
into the list the display renders. The aggregate is a pure function of
(stored events, window); CalendarFeed keeps it fresh from the live store.
"""

import calendar
from datetime import datetime, date, time as dt_time
from typing import Callable, Optional, Sequence

from loguru import logger

from .document_store import Subscription
from .event_repository import EventRepository
from .holiday_generator import HolidayGenerator
from .models import DisplayEvent, Event
from .recurrence import RecurrenceExpander
from .timezone_utils import local_naive_to_utc, utc_to_local_naive


def month_window(day: date) -> tuple[datetime, datetime]:
    """
    Get the visible window of a month view.

    Returns:
        (start, end) as aware UTC datetimes: local midnight on the first of
        the month and the last local instant of its last day.
    """
    last_day = calendar.monthrange(day.year, day.month)[1]
    start = local_naive_to_utc(datetime(day.year, day.month, 1))
    end = local_naive_to_utc(datetime.combine(date(day.year, day.month, last_day), dt_time.max))
    return start, end


def window_years(window_start: datetime, window_end: datetime) -> range:
    """Calendar years touched by a window, in local time."""
    first = utc_to_local_naive(window_start).year
    last = utc_to_local_naive(window_end).year
    return range(first, last + 1)


class EventAggregator:
    """
    Combines stored events, recurrences and holidays for a window.

    The last result is memoised on (events, window_start, window_end).
    """

    def __init__(
        self,
        holidays: Optional[HolidayGenerator] = None,
        expander: Optional[RecurrenceExpander] = None,
    ):
        self.holidays = holidays or HolidayGenerator()
        self.expander = expander or RecurrenceExpander()
        self._last_key: Optional[tuple] = None
        self._last_result: list[DisplayEvent] = []

    def aggregate(
        self,
        events: Sequence[Event],
        window_start: datetime,
        window_end: datetime,
    ) -> list[DisplayEvent]:
        """
        Build the display list for a window (unsorted).

        Raises:
            EventValidationError: if a recurring event has invalid dates.
        """
        key = (tuple(events), window_start, window_end)
        if key == self._last_key:
            return list(self._last_result)

        result: list[DisplayEvent] = []
        for event in events:
            if event.is_recurring:
                result.extend(self.expander.expand(event, window_start, window_end))
            else:
                result.append(event)

        for year in window_years(window_start, window_end):
            result.extend(self.holidays.generate(year))

        self._last_key = key
        self._last_result = result
        return list(result)


class CalendarFeed:
    """
    Live aggregate for the calendar display.

    Subscribes to the event repository and recomputes the aggregate from the
    latest snapshot whenever the snapshot or the visible window changes.
    The listener receives the full display list every time.
    """

    def __init__(
        self,
        repository: EventRepository,
        aggregator: EventAggregator,
        on_change: Callable[[list[DisplayEvent]], None],
        visible_day: Optional[date] = None,
    ):
        self._repository = repository
        self._aggregator = aggregator
        self._on_change = on_change
        self._events: tuple[Event, ...] = ()
        self._window = month_window(visible_day or date.today())
        self._display: list[DisplayEvent] = []
        self._subscription: Optional[Subscription] = None

    @property
    def window(self) -> tuple[datetime, datetime]:
        return self._window

    @property
    def events(self) -> tuple[Event, ...]:
        """Latest stored-event snapshot."""
        return self._events

    @property
    def display_events(self) -> list[DisplayEvent]:
        return list(self._display)

    def start(self) -> None:
        """Start listening to the store (delivers the current snapshot)."""
        if self._subscription is None:
            self._subscription = self._repository.subscribe(self._on_snapshot)

    def close(self) -> None:
        """Cancel the store subscription."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def show_month(self, day: date) -> None:
        """Move the visible window to the month containing `day`."""
        window = month_window(day)
        if window != self._window:
            self._window = window
            self._recompute()

    def _on_snapshot(self, events: list[Event]) -> None:
        self._events = tuple(events)
        self._recompute()

    def _recompute(self) -> None:
        start, end = self._window
        self._display = self._aggregator.aggregate(self._events, start, end)
        logger.debug(f"Calendar feed: {len(self._events)} stored, {len(self._display)} displayed")
        self._on_change(list(self._display))
