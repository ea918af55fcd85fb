"""
Domain objects for calendar events and photos.

Events and photos are owned by the document store; the objects here are
immutable snapshots parsed from store records. Occurrences and holidays are
derived for display and never written back.
"""

from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from enum import Enum
from typing import Any, Optional, Union
import pytz

from .timezone_utils import utc_to_local_naive, utc_midnight


class EventValidationError(ValueError):
    """Raised when event input is rejected before any store mutation."""


class Recurrence(str, Enum):
    """How often a stored event repeats."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: Any) -> 'Recurrence':
        """Parse a recurrence value from a record or form; None means NONE."""
        if value is None or value == "":
            return cls.NONE
        if isinstance(value, Recurrence):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise EventValidationError(f"Unknown recurrence: {value!r}")


class PhotoStatus(str, Enum):
    """Processing state of an uploaded photo."""
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERROR = "error"


def _ensure_utc(value: Any, field_name: str) -> datetime:
    """Coerce a date/datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pytz.UTC.localize(value)
        return value.astimezone(pytz.UTC)
    if isinstance(value, date):
        return utc_midnight(value)
    raise EventValidationError(f"Event {field_name} must be a date or datetime, got {value!r}")


def calendar_date(value: Union[date, datetime], all_day: bool = False) -> date:
    """
    Calendar date of an instant.

    All-day instants are midnight UTC and are read as-is; timed instants are
    read in the local timezone.
    """
    if isinstance(value, datetime):
        if all_day or value.tzinfo is None:
            return value.date()
        return utc_to_local_naive(value).date()
    return value


@dataclass(frozen=True)
class Event:
    """
    A stored calendar event.

    For all-day events start and end are date-only instants (midnight UTC)
    and start == end.
    """
    id: str
    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    recurrence: Recurrence = Recurrence.NONE
    until: Optional[datetime] = None

    @property
    def is_holiday(self) -> bool:
        return False

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @classmethod
    def create(
        cls,
        title: str,
        start: Union[date, datetime],
        end: Optional[Union[date, datetime]] = None,
        all_day: bool = False,
        recurrence: Any = Recurrence.NONE,
        until: Optional[Union[date, datetime]] = None,
        id: str = "",
    ) -> 'Event':
        """
        Validate raw form input and build a normalised Event.

        Raises:
            EventValidationError: on a blank title, missing or reversed
                dates, or an unknown recurrence value.
        """
        title = (title or "").strip()
        if not title:
            raise EventValidationError("Please enter a title.")
        if start is None:
            raise EventValidationError("Event start is required.")
        if end is None:
            end = start

        recurrence = Recurrence.parse(recurrence)

        if all_day:
            # Date pickers for all-day events only carry the start date
            day = calendar_date(start) if isinstance(start, datetime) else start
            start_dt = end_dt = utc_midnight(day)
        else:
            start_dt = _ensure_utc(start, "start")
            end_dt = _ensure_utc(end, "end")
            if end_dt < start_dt:
                raise EventValidationError("Event end must not be before its start.")

        until_dt = None
        if recurrence != Recurrence.NONE and until is not None:
            until_dt = utc_midnight(calendar_date(until))

        return cls(
            id=id,
            title=title,
            start=start_dt,
            end=end_dt,
            all_day=bool(all_day),
            recurrence=recurrence,
            until=until_dt,
        )

    # ==================== Record Conversion ====================

    def to_record(self) -> dict:
        """Serialize to a document store record (whole-record overwrite)."""
        return {
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "allDay": self.all_day,
            "recurrence": self.recurrence.value,
            "until": self.until,
        }

    @classmethod
    def from_record(cls, doc_id: str, data: dict) -> 'Event':
        """
        Parse a document store record.

        Raises:
            EventValidationError: if start/end are missing, malformed or
                reversed.
        """
        if data.get("start") is None or data.get("end") is None:
            raise EventValidationError(f"Event {doc_id} is missing start or end")
        start = _ensure_utc(data["start"], "start")
        end = _ensure_utc(data["end"], "end")
        if end < start:
            raise EventValidationError(f"Event {doc_id} ends before it starts")
        until = data.get("until")
        return cls(
            id=doc_id,
            title=str(data.get("title", "")),
            start=start,
            end=end,
            all_day=bool(data.get("allDay", False)),
            recurrence=Recurrence.parse(data.get("recurrence")),
            until=_ensure_utc(until, "until") if until is not None else None,
        )


@dataclass(frozen=True)
class Occurrence:
    """
    One concrete instance of a recurring Event inside a query window.

    Delegates every field except start/end to the source event.
    """
    event: Event
    start: datetime
    end: datetime

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def title(self) -> str:
        return self.event.title

    @property
    def all_day(self) -> bool:
        return self.event.all_day

    @property
    def recurrence(self) -> Recurrence:
        return self.event.recurrence

    @property
    def until(self) -> Optional[datetime]:
        return self.event.until

    @property
    def is_holiday(self) -> bool:
        return False

    def __repr__(self):
        return f"Occurrence(id={self.id!r}, title={self.title!r}, start={self.start})"


@dataclass(frozen=True)
class HolidayEvent:
    """Read-only holiday pseudo-event (all-day, never selectable)."""
    title: str
    day: date

    all_day = True
    is_holiday = True

    @property
    def start(self) -> datetime:
        return utc_midnight(self.day)

    @property
    def end(self) -> datetime:
        return self.start


DisplayEvent = Union[Event, Occurrence, HolidayEvent]


@dataclass(frozen=True)
class Photo:
    """A stored photo record."""
    id: str
    file_name: str = ""
    image_url: Optional[str] = None
    storage_path: Optional[str] = None
    created_at: Optional[datetime] = None
    date_taken: Optional[datetime] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    status: PhotoStatus = PhotoStatus.COMPLETE
    extra: dict = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def is_displayable(self) -> bool:
        """Whether the slideshow can show this photo."""
        return self.status == PhotoStatus.COMPLETE and bool(self.image_url)

    @classmethod
    def from_record(cls, doc_id: str, data: dict) -> 'Photo':
        """Parse a document store record."""
        known = {
            "fileName", "imageUrl", "storagePath", "createdAt",
            "dateTaken", "cameraMake", "cameraModel", "status",
        }
        try:
            status = PhotoStatus(data.get("status") or PhotoStatus.COMPLETE.value)
        except ValueError:
            status = PhotoStatus.ERROR
        return cls(
            id=doc_id,
            file_name=data.get("fileName") or "",
            image_url=data.get("imageUrl"),
            storage_path=data.get("storagePath"),
            created_at=data.get("createdAt"),
            date_taken=data.get("dateTaken"),
            camera_make=data.get("cameraMake"),
            camera_model=data.get("cameraModel"),
            status=status,
            extra={k: v for k, v in data.items() if k not in known},
        )
