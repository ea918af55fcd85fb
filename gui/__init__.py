"""
Photo Kiosk GUI Module

PySide6-based kiosk display: slideshow stage, event list and overlays.
"""

from .main_window import KioskWindow
from .event_dialog import EventDialog
from .login_dialog import LoginDialog

__all__ = ['KioskWindow', 'EventDialog', 'LoginDialog']
