"""
Event repository over the document store.

Validates event input before any store mutation, converts records to Event
objects and exposes the live event snapshot to the calendar display.
"""

from datetime import datetime, date
from typing import Any, Callable, Optional, Union

from loguru import logger

from .document_store import DocumentStore, Document, Subscription
from .models import Event, EventValidationError, Recurrence


EVENTS_COLLECTION = "events"

ConfirmCallback = Callable[[str], bool]


def delete_confirmation_message(event: Event) -> str:
    """Confirmation prompt shown before deleting an event."""
    if event.is_recurring:
        return (
            "This is a recurring event. Are you sure you want to delete "
            "this event and all future occurrences?"
        )
    return f'Are you sure you want to delete the event: "{event.title}"?'


class EventRepository:
    """
    Repository for stored calendar events.

    Mutations are fire-and-forget: the displayed list is never patched
    locally, it always comes from the next store snapshot.
    """

    def __init__(self, store: DocumentStore, collection: str = EVENTS_COLLECTION):
        self._store = store
        self._collection = collection

    # ==================== Reading ====================

    def _documents_to_events(self, documents: list[Document]) -> list[Event]:
        events = []
        for document in documents:
            try:
                events.append(Event.from_record(document.id, document.data))
            except EventValidationError as e:
                logger.warning(f"Skipping malformed event {document.id}: {e}")
        return events

    def subscribe(self, callback: Callable[[list[Event]], None]) -> Subscription:
        """Receive the full event list now and after every change."""
        return self._store.subscribe(
            self._collection,
            lambda documents: callback(self._documents_to_events(documents)),
        )

    def get_events(self) -> list[Event]:
        """One-time read of all stored events."""
        return self._documents_to_events(self._store.get(self._collection))

    # ==================== CRUD Operations ====================

    def create_event(
        self,
        title: str,
        start: Union[date, datetime],
        end: Optional[Union[date, datetime]] = None,
        all_day: bool = False,
        recurrence: Any = Recurrence.NONE,
        until: Optional[Union[date, datetime]] = None,
    ) -> Optional[str]:
        """
        Create a new event.

        Raises:
            EventValidationError: before touching the store if input is invalid.

        Returns:
            The new event id, or None if the store write failed.
        """
        event = Event.create(title, start, end, all_day, recurrence, until)
        try:
            event_id = self._store.add(self._collection, event.to_record())
        except OSError as e:
            logger.error(f"Error adding event {event.title!r}: {e}")
            return None
        logger.info(f"Event added: {event.title!r} ({event_id})")
        return event_id

    def update_event(
        self,
        event_id: str,
        title: str,
        start: Union[date, datetime],
        end: Optional[Union[date, datetime]] = None,
        all_day: bool = False,
        recurrence: Any = Recurrence.NONE,
        until: Optional[Union[date, datetime]] = None,
    ) -> bool:
        """
        Overwrite an event's fields, recurrence included.

        Raises:
            EventValidationError: before touching the store if input is invalid.
        """
        event = Event.create(title, start, end, all_day, recurrence, until, id=event_id)
        try:
            self._store.update(self._collection, event_id, event.to_record())
        except (OSError, KeyError) as e:
            logger.error(f"Error updating event {event_id}: {e}")
            return False
        logger.info(f"Event updated: {event.title!r} ({event_id})")
        return True

    def delete_event(self, event: Event, confirm: Optional[ConfirmCallback] = None) -> bool:
        """
        Delete an event and, for recurring events, all its occurrences.

        Args:
            event: The stored event (occurrences pass their source event)
            confirm: Asked with a confirmation message; deletion is skipped
                unless it returns True. None means already confirmed.
        """
        if confirm is not None and not confirm(delete_confirmation_message(event)):
            return False
        try:
            self._store.delete(self._collection, event.id)
        except OSError as e:
            logger.error(f"Error deleting event {event.id}: {e}")
            return False
        logger.info(f"Event deleted: {event.title!r} ({event.id})")
        return True
