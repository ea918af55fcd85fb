"""
Recurrence expansion for stored events.

Builds an iCalendar RRULE from an event's recurrence fields and expands it
with the recurring_ical_events library into Occurrence objects that fall
inside a visible window.

Expansion happens on wall-clock time: timed events keep their local
time-of-day across DST changes, all-day events keep their calendar date.
Monthly events anchored on the 29th-31st land on the last valid day of
shorter months; yearly events on Feb 29 land on Feb 28 in common years.
"""

from datetime import datetime, date, time as dt_time, timedelta
from typing import Optional, Union

import pytz
from icalendar import Calendar as ICalCalendar, Event as ICalEvent
from recurring_ical_events import of as recurring_events_of

from .models import Event, EventValidationError, Occurrence, Recurrence
from .timezone_utils import utc_to_local_naive, local_naive_to_utc


PRODID = '-//Photo Kiosk//Recurrence Expander//EN'

# Inclusive end of the `until` day
END_OF_DAY = dt_time(23, 59, 59)


class RecurrenceExpander:
    """Expands recurring Event templates into concrete occurrences."""

    def expand(
        self,
        event: Event,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Union[Event, Occurrence]]:
        """
        Expand an event into the occurrences starting inside a window.

        Args:
            event: The stored event template
            window_start: Inclusive start of the visible window
            window_end: Inclusive end of the visible window

        Returns:
            [event] for non-recurring events, otherwise the occurrences
            sorted by start time.

        Raises:
            EventValidationError: if the event has missing or invalid dates.
            ValueError: if the window is reversed.
        """
        if not event.is_recurring:
            return [event]

        self._validate(event)
        if window_end < window_start:
            raise ValueError(f"Window end {window_end} is before window start {window_start}")

        all_day = event.all_day
        aware = event.start.tzinfo is not None

        anchor = self._to_wall(event.start, all_day)
        duration = event.end - event.start
        span_start, span_end = self._span(window_start, window_end, all_day)

        # Until is stored as a date-only instant (midnight UTC)
        until_day: Optional[date] = None
        if event.until is not None:
            until_day = self._to_wall(event.until, True).date()

        vcal = self._build_calendar(event, anchor, duration, until_day)

        # between() is end-exclusive and also returns instances that merely
        # overlap the span, so widen it and filter on start times below.
        expanded = recurring_events_of(vcal).between(span_start, span_end + timedelta(seconds=1))

        starts = set()
        for component in expanded:
            dtstart = component.get('DTSTART')
            if dtstart is None:
                continue
            value = dtstart.dt
            if not isinstance(value, datetime):
                value = datetime.combine(value, dt_time.min)
            value = value.replace(tzinfo=None)

            if not span_start <= value <= span_end:
                continue
            if until_day is not None and value.date() > until_day:
                continue
            starts.add(value)

        occurrences = []
        for wall_start in sorted(starts):
            start = self._from_wall(wall_start, all_day, aware)
            occurrences.append(Occurrence(event=event, start=start, end=start + duration))
        return occurrences

    @staticmethod
    def _validate(event: Event) -> None:
        if not isinstance(event.start, datetime) or not isinstance(event.end, datetime):
            raise EventValidationError(f"Event {event.id!r} has no valid start/end")
        if (event.start.tzinfo is None) != (event.end.tzinfo is None):
            raise EventValidationError(f"Event {event.id!r} mixes naive and aware datetimes")
        if event.end < event.start:
            raise EventValidationError(f"Event {event.id!r} ends before it starts")

    @staticmethod
    def _to_wall(dt: datetime, all_day: bool) -> datetime:
        """Naive wall-clock datetime used for rule arithmetic."""
        if dt.tzinfo is None:
            return dt
        if all_day:
            return dt.astimezone(pytz.UTC).replace(tzinfo=None)
        return utc_to_local_naive(dt)

    @staticmethod
    def _span(window_start: datetime, window_end: datetime, all_day: bool) -> tuple[datetime, datetime]:
        """Wall-clock span of a window; all-day events match on whole local days."""
        if not all_day or window_start.tzinfo is None:
            return (RecurrenceExpander._to_wall(window_start, all_day),
                    RecurrenceExpander._to_wall(window_end, all_day))
        first = utc_to_local_naive(window_start).date()
        last = utc_to_local_naive(window_end).date()
        return datetime.combine(first, dt_time.min), datetime.combine(last, END_OF_DAY)

    @staticmethod
    def _from_wall(dt: datetime, all_day: bool, aware: bool) -> datetime:
        if not aware:
            return dt
        if all_day:
            return pytz.UTC.localize(dt)
        return local_naive_to_utc(dt)

    def _build_calendar(
        self,
        event: Event,
        anchor: datetime,
        duration: timedelta,
        until_day: Optional[date],
    ) -> ICalCalendar:
        """Build a minimal VCALENDAR holding the event's recurrence rule."""
        vevent = ICalEvent()
        vevent.add('uid', event.id or 'kiosk-event')
        vevent.add('summary', event.title)
        vevent.add('dtstart', anchor)
        vevent.add('dtend', anchor + duration)
        vevent.add('rrule', self.build_rrule(event.recurrence, anchor, until_day))

        vcal = ICalCalendar()
        vcal.add('prodid', PRODID)
        vcal.add('version', '2.0')
        vcal.add_component(vevent)
        return vcal

    @staticmethod
    def build_rrule(
        recurrence: Recurrence,
        anchor: datetime,
        until_day: Optional[date] = None,
    ) -> dict:
        """
        Build the RRULE dict for a frequency anchored at a wall-clock start.

        Month-end anchors are clamped with BYSETPOS=-1 over the candidate
        days so short months still get an occurrence.
        """
        if recurrence == Recurrence.NONE:
            raise ValueError("Cannot build a recurrence rule for a non-recurring event")

        rrule = {'freq': recurrence.value.upper()}

        if recurrence == Recurrence.MONTHLY and anchor.day > 28:
            rrule['bymonthday'] = list(range(28, anchor.day + 1))
            rrule['bysetpos'] = -1
        elif recurrence == Recurrence.YEARLY and (anchor.month, anchor.day) == (2, 29):
            rrule['bymonth'] = 2
            rrule['bymonthday'] = [28, 29]
            rrule['bysetpos'] = -1

        if until_day is not None:
            rrule['until'] = datetime.combine(until_day, END_OF_DAY)

        return rrule
