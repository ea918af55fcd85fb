"""
Photo Kiosk Engine Module

This module provides the core functionality of the kiosk:
- Configuration parsing (config.py) and logging setup (log.py)
- Event and photo records (models.py)
- Holiday generation (holiday_generator.py)
- Recurrence expansion with recurring_ical_events (recurrence.py)
- Event aggregation for the calendar view (aggregator.py)
- Cross-fade slideshow scheduling (slideshow.py)
- Offline image cache and pin worker (image_cache.py)
- Document store and object storage backends (document_store.py, object_storage.py)
- Event repository and photo library (event_repository.py, photo_library.py)
- Photo processing step (image_processing.py)
- Sign-in gate (auth.py) and overlay state (overlay.py)
"""

from .config import Config
from .models import Event, Occurrence, HolidayEvent, Photo, Recurrence, PhotoStatus, EventValidationError
from .holiday_generator import HolidayGenerator
from .recurrence import RecurrenceExpander
from .aggregator import EventAggregator, CalendarFeed, month_window
from .slideshow import SlideshowScheduler
from .image_cache import ImageCache, ImageCacheWorker, CachingImageAdapter, create_image_session
from .document_store import DocumentStore, JsonDocumentStore, Subscription, SERVER_TIMESTAMP
from .object_storage import ObjectStorage, LocalObjectStorage
from .event_repository import EventRepository
from .photo_library import PhotoLibrary, PhotoDeleteError
from .image_processing import ImageProcessor
from .auth import AllowListGate, AuthError, PasswordProgramAuthenticator
from .overlay import Overlay, OverlayState

__all__ = [
    'Config',
    'Event',
    'Occurrence',
    'HolidayEvent',
    'Photo',
    'Recurrence',
    'PhotoStatus',
    'EventValidationError',
    'HolidayGenerator',
    'RecurrenceExpander',
    'EventAggregator',
    'CalendarFeed',
    'month_window',
    'SlideshowScheduler',
    'ImageCache',
    'ImageCacheWorker',
    'CachingImageAdapter',
    'create_image_session',
    'DocumentStore',
    'JsonDocumentStore',
    'Subscription',
    'SERVER_TIMESTAMP',
    'ObjectStorage',
    'LocalObjectStorage',
    'EventRepository',
    'PhotoLibrary',
    'PhotoDeleteError',
    'ImageProcessor',
    'AllowListGate',
    'AuthError',
    'PasswordProgramAuthenticator',
    'Overlay',
    'OverlayState',
]
