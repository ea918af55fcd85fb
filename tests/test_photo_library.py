from datetime import datetime

import pytest
import pytz
from PIL import ExifTags, Image

from engine import timezone_utils
from engine.image_processing import ImageProcessor
from engine.models import Photo, PhotoStatus
from engine.object_storage import LocalObjectStorage
from engine.photo_library import PhotoLibrary, read_exif, summarize_failures

from helpers import jpeg_bytes, utc


def camera_exif():
    exif = Image.Exif()
    exif[ExifTags.Base.Make] = "Canon"
    exif[ExifTags.Base.Model] = "EOS R6"
    exif[ExifTags.Base.DateTime] = "2023:07:04 12:30:00"
    return exif


@pytest.fixture
def photo_file(tmp_path):
    path = tmp_path / "Beach.JPG"
    path.write_bytes(jpeg_bytes(exif=camera_exif()))
    return path


@pytest.fixture
def library(store, storage):
    return PhotoLibrary(store, storage)


class BrokenStorage(LocalObjectStorage):
    def upload(self, path, data, metadata=None):
        raise OSError("disk full")


class TestReadExif:
    def test_camera_and_date(self, photo_file):
        exif = read_exif(photo_file)
        assert exif.camera_make == "Canon"
        assert exif.camera_model == "EOS R6"
        assert exif.date_taken == utc(2023, 7, 4, 12, 30)

    def test_date_read_as_local_time(self, photo_file):
        timezone_utils.set_timezone("Europe/Berlin")
        assert read_exif(photo_file).date_taken == utc(2023, 7, 4, 10, 30)

    def test_no_exif(self, tmp_path):
        path = tmp_path / "plain.jpg"
        path.write_bytes(jpeg_bytes())
        exif = read_exif(path)
        assert (exif.date_taken, exif.camera_make, exif.camera_model) == (None, None, None)

    def test_not_an_image(self, tmp_path):
        path = tmp_path / "notes.jpg"
        path.write_text("not a photo")
        assert read_exif(path).date_taken is None


class TestUpload:
    def test_without_processing_leaves_uploading_record(self, library, storage, photo_file):
        doc_id = library.upload_photo(photo_file)

        photo = library.get_photos()[0]
        assert photo.id == doc_id
        assert photo.status == PhotoStatus.UPLOADING
        assert photo.file_name == "Beach.JPG"
        assert photo.camera_make == "Canon"
        assert isinstance(photo.created_at, datetime)
        assert not photo.is_displayable

        raw = storage.stat(f"raw-uploads/{doc_id}.jpg")
        assert raw.content_type == "image/jpeg"
        assert raw.metadata["originalFileName"] == "Beach.JPG"
        assert raw.metadata["cameraModel"] == "EOS R6"
        assert raw.metadata["dateTaken"].startswith("2023-07-04T12:30:00")

    def test_unknown_metadata(self, library, storage, tmp_path):
        path = tmp_path / "plain.jpg"
        path.write_bytes(jpeg_bytes())
        doc_id = library.upload_photo(path)
        metadata = storage.stat(f"raw-uploads/{doc_id}.jpg").metadata
        assert metadata["dateTaken"] == "unknown"
        assert metadata["cameraMake"] == "unknown"

    def test_with_processing_completes(self, library, store, storage, photo_file):
        ImageProcessor(store, storage).attach()
        doc_id = library.upload_photo(photo_file)

        photo = library.get_photos()[0]
        assert photo.status == PhotoStatus.COMPLETE
        assert photo.storage_path == f"processed-images/{doc_id}.webp"
        assert photo.is_displayable
        assert not storage.exists(f"raw-uploads/{doc_id}.jpg")

    def test_storage_failure_marks_error(self, store, tmp_path, photo_file):
        library = PhotoLibrary(store, BrokenStorage(tmp_path / "broken"))
        with pytest.raises(OSError):
            library.upload_photo(photo_file)
        assert library.get_photos()[0].status == PhotoStatus.ERROR

    def test_batch_reports_each_failure(self, library, photo_file, tmp_path):
        missing = tmp_path / "missing.jpg"
        failures = library.upload_photos([photo_file, missing])
        assert failures == ["Failed to upload missing.jpg."]
        assert len(library.get_photos()) == 1

    def test_ordering(self, library, store):
        store.add("photos", {"fileName": "second.jpg", "createdAt": utc(2024, 1, 2)})
        store.add("photos", {"fileName": "first.jpg", "createdAt": utc(2024, 1, 1)})
        assert [p.file_name for p in library.get_photos()] == ["first.jpg", "second.jpg"]
        snapshots = []
        library.subscribe(snapshots.append, newest_first=True)
        assert [p.file_name for p in snapshots[-1]] == ["second.jpg", "first.jpg"]


class TestDelete:
    def test_delete_removes_file_and_record(self, library, store, storage, photo_file):
        ImageProcessor(store, storage).attach()
        library.upload_photo(photo_file)
        photo = library.get_photos()[0]

        assert library.delete_photo(photo)
        assert library.get_photos() == []
        assert not storage.exists(photo.storage_path)

    def test_delete_unprocessed_photo_removes_raw_upload(self, library, storage, photo_file):
        doc_id = library.upload_photo(photo_file)
        raw_path = f"raw-uploads/{doc_id}.jpg"
        assert storage.exists(raw_path)
        photo = library.get_photos()[0]
        assert photo.status == PhotoStatus.UPLOADING

        assert library.delete_photo(photo)
        assert library.get_photos() == []
        assert not storage.exists(raw_path)

    def test_delete_without_any_stored_file(self, library, store):
        store.add("photos", {"fileName": "a.jpg", "status": "error"})
        assert library.delete_photo(library.get_photos()[0])
        assert library.get_photos() == []

    def test_declined_confirmation(self, library, store):
        store.add("photos", {"fileName": "a.jpg"})
        photo = library.get_photos()[0]
        prompts = []

        def decline(message):
            prompts.append(message)
            return False

        assert library.delete_photo(photo, confirm=decline) is False
        assert prompts == ['Are you sure you want to delete the photo: "a.jpg"?']
        assert len(library.get_photos()) == 1

    def test_batch_partial_failure(self, library, store):
        store.add("photos", {"fileName": "ok.jpg", "createdAt": utc(2024, 1, 1)})
        store.add("photos", {
            "fileName": "gone.jpg",
            "createdAt": utc(2024, 1, 2),
            "storagePath": "processed-images/gone.webp",
        })
        photos = library.get_photos()
        prompts = []

        failures = library.delete_photos(photos, confirm=lambda m: prompts.append(m) or True)

        assert prompts == ["Are you sure you want to delete 2 selected photos?"]
        assert failures == ["Failed to delete gone.jpg."]
        assert [p.file_name for p in library.get_photos()] == ["gone.jpg"]
        assert "Failed to delete gone.jpg." in summarize_failures(failures)

    def test_batch_declined(self, library, store):
        store.add("photos", {"fileName": "a.jpg"})
        assert library.delete_photos(library.get_photos(), confirm=lambda m: False) == []
        assert len(library.get_photos()) == 1

    def test_empty_batch(self, library):
        assert library.delete_photos([]) == []


class TestPhotoRecord:
    def test_only_complete_with_url_is_displayable(self):
        assert Photo(id="a", image_url="https://x/a.webp").is_displayable
        assert not Photo(id="b", image_url=None).is_displayable
        assert not Photo(id="c", image_url="https://x/c.webp", status=PhotoStatus.ERROR).is_displayable

    def test_unknown_status_is_error(self):
        assert Photo.from_record("a", {"status": "bogus"}).status == PhotoStatus.ERROR

    def test_extra_fields_kept(self):
        photo = Photo.from_record("a", {"fileName": "a.jpg", "width": 10, "createdAt": datetime(2024, 1, 1, tzinfo=pytz.UTC)})
        assert photo.extra == {"width": 10}
