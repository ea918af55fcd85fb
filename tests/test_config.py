from pathlib import Path

import pytest

from engine.config import Config


EXAMPLE = """
[General]
data_dir = "{data}"
state_file = "{data}/state.json"
timezone = "Europe/Berlin"

[Slideshow]
interval_ms = 7000

[Holidays]
country = "DE"
subdivision = "BY"
denylist = []

[ImageCache]
origin_host = "images.example.com"

[Processing]
max_width = 800
max_height = 600

[Storage]
public_base_url = "https://images.example.com/"

[Auth]
password_program = "/usr/local/bin/pass"
allowed_emails = ["grandma@example.com"]

[Auth.Accounts."grandma@example.com"]
password_key = "kiosk/grandma"
"""


class TestConfig:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
        config = Config.from_dict({})

        assert config.data_dir == tmp_path / "data" / "photo-kiosk"
        assert config.state_file == tmp_path / "state" / "photo-kiosk" / "state.json"
        assert config.timezone == "America/Chicago"
        assert config.slideshow.interval_ms == 10000
        assert config.holidays.country == "US"
        assert config.holidays.denylist == ["Day After Thanksgiving"]
        assert (config.processing.max_width, config.processing.max_height, config.processing.quality) == (1080, 960, 80)
        assert config.image_cache_dir == config.data_dir / "image-cache"
        assert config.session_file == config.state_file.parent / "session.json"
        assert config.auth.allowed_emails == []

    def test_load_toml(self, tmp_path):
        path = tmp_path / "photo-kiosk.toml"
        path.write_text(EXAMPLE.format(data=tmp_path.as_posix()))
        config = Config.load(path)

        assert config.data_dir == tmp_path
        assert config.store_dir == tmp_path / "store"
        assert config.objects_dir == tmp_path / "objects"
        assert config.timezone == "Europe/Berlin"
        assert config.slideshow.interval_ms == 7000
        assert (config.holidays.country, config.holidays.subdivision) == ("DE", "BY")
        assert config.holidays.denylist == []
        assert config.image_cache.origin_host == "images.example.com"
        assert config.processing.max_width == 800
        assert config.processing.quality == 80
        assert config.storage.public_base_url == "https://images.example.com/"
        assert config.auth.password_program == "/usr/local/bin/pass"
        assert config.auth.allowed_emails == ["grandma@example.com"]

        account = config.auth.get_account("GRANDMA@example.com")
        assert account.password_key == "kiosk/grandma"
        assert config.auth.get_account("stranger@example.com") is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "nope.toml")

    def test_user_paths_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = Config.from_dict({"General": {"data_dir": "~/kiosk"}})
        assert config.data_dir == Path(tmp_path) / "kiosk"
