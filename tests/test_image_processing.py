import io

import pytest
from PIL import Image

from engine.config import ProcessingConfig
from engine.image_processing import ImageProcessor, doc_id_from_path, render_webp
from engine.models import PhotoStatus

from helpers import jpeg_bytes


@pytest.fixture
def processor(store, storage):
    return ImageProcessor(store, storage)


def record(store, doc_id):
    return next(d.data for d in store.get("photos") if d.id == doc_id)


def placeholder(store):
    return store.add("photos", {"fileName": "beach.jpg", "status": PhotoStatus.UPLOADING.value})


class TestRenderWebp:
    def test_output_has_exact_frame_size(self):
        data = render_webp(jpeg_bytes(size=(400, 100)), 1080, 960, 80)
        with Image.open(io.BytesIO(data)) as im:
            assert im.format == "WEBP"
            assert im.size == (1080, 960)

    def test_palette_images_are_converted(self):
        out = io.BytesIO()
        Image.new("P", (20, 20)).save(out, format="PNG")
        with Image.open(io.BytesIO(render_webp(out.getvalue(), 10, 10, 50))) as im:
            assert im.size == (10, 10)

    def test_garbage_raises(self):
        with pytest.raises(OSError):
            render_webp(b"not an image", 10, 10, 50)


class TestImageProcessor:
    def test_processes_raw_upload(self, processor, store, storage):
        doc_id = placeholder(store)
        raw = storage.upload(f"raw-uploads/{doc_id}.jpg", jpeg_bytes(), {"contentType": "image/jpeg"})

        assert processor.handle_finalized(raw) is True

        data = record(store, doc_id)
        assert data["status"] == "complete"
        assert data["storagePath"] == f"processed-images/{doc_id}.webp"
        assert data["imageUrl"] == storage.signed_url(f"processed-images/{doc_id}.webp")
        assert not storage.exists(raw.path)
        with Image.open(io.BytesIO(storage.download(data["storagePath"]))) as im:
            assert im.size == (1080, 960)

    def test_custom_frame(self, store, storage):
        processor = ImageProcessor(store, storage, ProcessingConfig(max_width=300, max_height=200, quality=60))
        doc_id = placeholder(store)
        raw = storage.upload(f"raw-uploads/{doc_id}.jpg", jpeg_bytes(), {"contentType": "image/jpeg"})
        processor.handle_finalized(raw)
        with Image.open(io.BytesIO(storage.download(f"processed-images/{doc_id}.webp"))) as im:
            assert im.size == (300, 200)

    def test_attached_processor_runs_on_upload(self, processor, store, storage):
        subscription = processor.attach()
        doc_id = placeholder(store)
        storage.upload(f"raw-uploads/{doc_id}.jpg", jpeg_bytes(), {"contentType": "image/jpeg"})
        assert record(store, doc_id)["status"] == "complete"

        subscription.cancel()
        other = placeholder(store)
        storage.upload(f"raw-uploads/{other}.jpg", jpeg_bytes(), {"contentType": "image/jpeg"})
        assert record(store, other)["status"] == "uploading"

    def test_ignores_non_images(self, processor, store, storage):
        doc_id = placeholder(store)
        obj = storage.upload(f"raw-uploads/{doc_id}.txt", b"hello", {"contentType": "text/plain"})
        assert processor.handle_finalized(obj) is False
        assert record(store, doc_id)["status"] == "uploading"
        assert storage.exists(obj.path)

    def test_ignores_other_prefixes(self, processor, storage):
        obj = storage.upload("processed-images/x.webp", b"...", {"contentType": "image/webp"})
        assert processor.handle_finalized(obj) is False

    def test_corrupt_image_marks_error(self, processor, store, storage):
        doc_id = placeholder(store)
        raw = storage.upload(f"raw-uploads/{doc_id}.jpg", b"corrupt", {"contentType": "image/jpeg"})
        assert processor.handle_finalized(raw) is False
        assert record(store, doc_id)["status"] == "error"
        assert not storage.exists(f"processed-images/{doc_id}.webp")

    def test_missing_record_is_logged_not_raised(self, processor, storage):
        raw = storage.upload("raw-uploads/orphan.jpg", jpeg_bytes(), {"contentType": "image/jpeg"})
        assert processor.handle_finalized(raw) is False


def test_doc_id_from_path():
    assert doc_id_from_path("raw-uploads/abc123.jpeg") == "abc123"
