#!/usr/bin/env python3
"""
Photo Kiosk - a family photo slideshow and calendar for a wall display.

This is the main entry point for the application.
"""

import sys
import argparse
from dataclasses import dataclass
from pathlib import Path

import requests
from PySide6.QtWidgets import QApplication, QDialog
from PySide6.QtCore import Qt
from loguru import logger

from engine.auth import AllowListGate, PasswordProgramAuthenticator
from engine.config import Config
from engine.document_store import JsonDocumentStore, Subscription
from engine.event_repository import EventRepository
from engine.image_cache import ImageCache, ImageCacheWorker, create_image_session
from engine.image_processing import ImageProcessor
from engine.log import init_logging
from engine.object_storage import LocalObjectStorage
from engine.photo_library import PhotoLibrary
from engine.timezone_utils import set_timezone
from gui.login_dialog import LoginDialog
from gui.main_window import KioskWindow


EXAMPLE_CONFIG = """
[General]
timezone = "America/Chicago"
# data_dir = "~/.local/share/photo-kiosk"
# log_dir = "~/.local/state/photo-kiosk/logs"

[Slideshow]
interval_ms = 10000

[Holidays]
country = "US"
denylist = ["Day After Thanksgiving"]

[ImageCache]
origin_host = "firebasestorage.googleapis.com"

[Auth]
password_program = "/usr/bin/pass"
allowed_emails = ["grandma@example.com"]

[Auth.Accounts."grandma@example.com"]
password_key = "kiosk/grandma"
"""


@dataclass
class KioskServices:
    """Everything the kiosk window talks to."""
    repository: EventRepository
    library: PhotoLibrary
    gate: AllowListGate
    image_session: requests.Session
    cache_worker: ImageCacheWorker
    processing: Subscription

    def close(self):
        self.processing.cancel()
        self.cache_worker.shutdown(wait=False)
        self.image_session.close()


def build_services(config: Config) -> KioskServices:
    """Wire stores, the processing step, the image cache and the sign-in gate."""
    store = JsonDocumentStore(config.store_dir)
    storage = LocalObjectStorage(config.objects_dir, config.storage.public_base_url)
    processor = ImageProcessor(store, storage, config.processing)

    image_cache = ImageCache(config.image_cache_dir)
    gate = AllowListGate(
        config.auth.allowed_emails,
        PasswordProgramAuthenticator(config.auth),
        config.session_file,
    )
    return KioskServices(
        repository=EventRepository(store),
        library=PhotoLibrary(store, storage),
        gate=gate,
        image_session=create_image_session(image_cache, config.image_cache.origin_host),
        cache_worker=ImageCacheWorker(image_cache, max_workers=config.image_cache.max_workers),
        processing=processor.attach(),
    )


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Photo Kiosk - a photo slideshow and family calendar"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration file (default: auto-detect)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output"
    )
    parser.add_argument(
        "--windowed",
        action="store_true",
        help="Run in a normal window instead of full screen"
    )
    return parser.parse_args()


def run_kiosk(config: Config, services: KioskServices, windowed: bool) -> int:
    """Alternate between the sign-in dialog and the kiosk window until quit."""
    gate = services.gate
    while True:
        if gate.current_user is None:
            dialog = LoginDialog(gate)
            if dialog.exec() != QDialog.Accepted:
                return 0

        window = KioskWindow(
            config,
            services.repository,
            services.library,
            gate,
            services.image_session,
            services.cache_worker,
        )
        if windowed:
            window.show()
        else:
            window.showFullScreen()
        QApplication.instance().exec()

        if gate.current_user is not None:
            # Closed without signing out
            return 0


def main():
    """Main entry point."""
    args = parse_args()

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    app = QApplication(sys.argv)
    app.setApplicationName("Photo Kiosk")
    app.setApplicationVersion("0.1")
    app.setStyle("Fusion")

    try:
        config = Config.load(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        print("\nPlease create a configuration file at:")
        print(f"  - {Config.get_default_config_path()}")
        print("\nExample configuration:")
        print(EXAMPLE_CONFIG)
        sys.exit(1)
    except (ValueError, TypeError) as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    init_logging(debug=args.debug, log_dir=config.log_dir)
    set_timezone(config.timezone)
    logger.info(f"Loaded configuration from: {args.config or Config.get_default_config_path()}")
    logger.debug(f"Data directory: {config.data_dir}")

    services = build_services(config)
    try:
        exit_code = run_kiosk(config, services, windowed=args.windowed)
    finally:
        services.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
