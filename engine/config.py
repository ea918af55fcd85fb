"""
Configuration parser for the photo kiosk.

Handles TOML file parsing and secure password retrieval via external programs.
"""

import tomllib
import subprocess
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_IMAGE_ORIGIN = "firebasestorage.googleapis.com"


@dataclass
class KioskAccount:
    """A sign-in account whose password lives in an external password store."""
    email: str
    password_key: str

    _password: Optional[str] = field(default=None, repr=False)

    def get_password(self, password_program: str) -> str:
        """Retrieve password using the configured password program."""
        if self._password is None:
            try:
                result = subprocess.run(
                    [password_program, self.password_key],
                    capture_output=True,
                    text=True,
                    timeout=30
                )
                if result.returncode == 0:
                    # pass prints the secret on the first line
                    self._password = result.stdout.splitlines()[0] if result.stdout else ""
                else:
                    raise RuntimeError(
                        f"Password program failed for key '{self.password_key}': {result.stderr}"
                    )
            except subprocess.TimeoutExpired:
                raise RuntimeError(f"Password program timed out for key '{self.password_key}'")
            except FileNotFoundError:
                raise RuntimeError(f"Password program not found: {password_program}")
        return self._password


@dataclass
class AuthConfig:
    """Allow-list gate configuration."""
    password_program: str = "/usr/bin/pass"
    allowed_emails: list[str] = field(default_factory=list)
    accounts: list[KioskAccount] = field(default_factory=list)

    def get_account(self, email: str) -> Optional[KioskAccount]:
        """Find the account entry for an email (case-insensitive)."""
        for account in self.accounts:
            if account.email.casefold() == email.casefold():
                return account
        return None


@dataclass
class SlideshowConfig:
    """Configuration for the photo rotation."""
    interval_ms: int = 10000  # How long each photo stays in the foreground


@dataclass
class HolidayConfig:
    """Configuration for generated holiday pseudo-events."""
    country: str = "US"
    subdivision: Optional[str] = None
    denylist: list[str] = field(default_factory=lambda: ["Day After Thanksgiving"])


@dataclass
class ImageCacheConfig:
    """Configuration for the offline image cache."""
    origin_host: str = DEFAULT_IMAGE_ORIGIN
    cache_dir: Optional[Path] = None  # Defaults to <data_dir>/image-cache
    max_workers: int = 6


@dataclass
class ProcessingConfig:
    """Configuration for the local image processing step."""
    max_width: int = 1080
    max_height: int = 960
    quality: int = 80


@dataclass
class StorageConfig:
    """Configuration for local object storage."""
    public_base_url: Optional[str] = None  # Served URL prefix; file:// URIs when unset


@dataclass
class Config:
    """Main configuration container for the photo kiosk."""

    data_dir: Path
    state_file: Path
    timezone: str = "America/Chicago"
    log_dir: Optional[Path] = None
    slideshow: SlideshowConfig = field(default_factory=SlideshowConfig)
    holidays: HolidayConfig = field(default_factory=HolidayConfig)
    image_cache: ImageCacheConfig = field(default_factory=ImageCacheConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    @property
    def store_dir(self) -> Path:
        """Directory of the local document store."""
        return self.data_dir / "store"

    @property
    def objects_dir(self) -> Path:
        """Directory of the local object storage."""
        return self.data_dir / "objects"

    @property
    def session_file(self) -> Path:
        """File holding the persisted sign-in session."""
        return self.state_file.parent / "session.json"

    @property
    def image_cache_dir(self) -> Path:
        """Directory of the durable image cache."""
        return self.image_cache.cache_dir or self.data_dir / "image-cache"

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'photo-kiosk' / 'photo-kiosk.toml'

    @classmethod
    def get_default_data_dir(cls) -> Path:
        """Get the default data directory (store, objects, image cache)."""
        xdg_data = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
        return Path(xdg_data) / 'photo-kiosk'

    @classmethod
    def get_default_state_path(cls) -> Path:
        """Get the default state file path."""
        xdg_state = os.environ.get('XDG_STATE_HOME', os.path.expanduser('~/.local/state'))
        return Path(xdg_state) / 'photo-kiosk' / 'state.json'

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Load configuration from TOML file."""
        if config_path is None:
            config_path = cls.get_default_config_path()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'rb') as f:
            data = tomllib.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build a Config from parsed TOML data, filling in defaults."""
        general = data.get('General', {})
        data_dir = _expand_path(general.get('data_dir')) or cls.get_default_data_dir()
        state_file = _expand_path(general.get('state_file')) or cls.get_default_state_path()

        slideshow_data = data.get('Slideshow', {})
        slideshow = SlideshowConfig(
            interval_ms=int(slideshow_data.get('interval_ms', SlideshowConfig.interval_ms)),
        )

        holiday_data = data.get('Holidays', {})
        holiday_defaults = HolidayConfig()
        holidays = HolidayConfig(
            country=holiday_data.get('country', holiday_defaults.country),
            subdivision=holiday_data.get('subdivision') or None,
            denylist=list(holiday_data.get('denylist', holiday_defaults.denylist)),
        )

        cache_data = data.get('ImageCache', {})
        image_cache = ImageCacheConfig(
            origin_host=cache_data.get('origin_host', ImageCacheConfig.origin_host),
            cache_dir=_expand_path(cache_data.get('cache_dir')),
            max_workers=int(cache_data.get('max_workers', ImageCacheConfig.max_workers)),
        )

        processing_data = data.get('Processing', {})
        processing = ProcessingConfig(
            max_width=int(processing_data.get('max_width', ProcessingConfig.max_width)),
            max_height=int(processing_data.get('max_height', ProcessingConfig.max_height)),
            quality=int(processing_data.get('quality', ProcessingConfig.quality)),
        )

        storage_data = data.get('Storage', {})
        storage = StorageConfig(
            public_base_url=storage_data.get('public_base_url') or None,
        )

        # [Auth] plus [Auth.Accounts."someone@example.com"] sub-tables
        auth_data = data.get('Auth', {})
        accounts = []
        for email, account_data in auth_data.get('Accounts', {}).items():
            if isinstance(account_data, dict):
                accounts.append(KioskAccount(
                    email=email,
                    password_key=account_data.get('password_key', ''),
                ))
        auth = AuthConfig(
            password_program=auth_data.get('password_program', AuthConfig.password_program),
            allowed_emails=list(auth_data.get('allowed_emails', [])),
            accounts=accounts,
        )

        return cls(
            data_dir=data_dir,
            state_file=state_file,
            timezone=general.get('timezone', cls.timezone),
            log_dir=_expand_path(general.get('log_dir')),
            slideshow=slideshow,
            holidays=holidays,
            image_cache=image_cache,
            processing=processing,
            storage=storage,
            auth=auth,
        )


def _expand_path(value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    return Path(os.path.expanduser(value))
