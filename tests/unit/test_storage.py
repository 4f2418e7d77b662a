"""Tests for studiolab.core.storage — uploads, outputs, and path safety."""

from __future__ import annotations

import pytest

from studiolab.core.storage import (
    FileStorage,
    InvalidPathError,
    StorageError,
    output_extension,
    sniff_image,
)


class TestSniffImage:
    def test_png(self, png_bytes: bytes):
        assert sniff_image(png_bytes) == ("image/png", ".png")

    def test_not_an_image(self):
        with pytest.raises(StorageError):
            sniff_image(b"plain text, definitely not an image")


class TestUploads:
    def test_save_and_read(self, storage: FileStorage, png_bytes: bytes):
        stored = storage.save_upload("room.png", png_bytes, "image/png")
        assert stored["filename"] == "room.png"
        assert stored["path"].startswith("/uploads/")
        assert stored["path"].endswith(".png")
        assert stored["mime_type"] == "image/png"
        assert storage.read_upload(stored["path"]) == png_bytes

    def test_generic_content_type_is_sniffed(self, storage: FileStorage, png_bytes: bytes):
        stored = storage.save_upload("room", png_bytes, "application/octet-stream")
        assert stored["mime_type"] == "image/png"
        assert stored["path"].endswith(".png")

    def test_empty_upload_rejected(self, storage: FileStorage):
        with pytest.raises(StorageError, match="Empty file"):
            storage.save_upload("empty.png", b"")

    def test_non_image_rejected(self, storage: FileStorage):
        with pytest.raises(StorageError):
            storage.save_upload("notes.png", b"hello")

    def test_read_missing(self, storage: FileStorage):
        with pytest.raises(StorageError, match="File not found"):
            storage.read_upload("/uploads/missing.png")

    def test_read_traversal_rejected(self, storage: FileStorage):
        with pytest.raises(InvalidPathError, match="Invalid path"):
            storage.read_upload("/uploads/../secret.png")


class TestOutputs:
    def test_save_and_resolve(self, storage: FileStorage, png_bytes: bytes):
        public = storage.save_output("run-1", 0, png_bytes, "image/png")
        assert public.startswith("/api/outputs/run-1/step-0-")
        assert public.endswith(".png")

        path, content_type = storage.resolve_output(public[len("/api/outputs/"):])
        assert path.read_bytes() == png_bytes
        assert content_type == "image/png"

    def test_jpeg_extension(self, storage: FileStorage):
        public = storage.save_output("run-1", 2, b"\xff\xd8data", "image/jpeg")
        assert public.endswith(".jpg")

    @pytest.mark.parametrize("relative", ["../etc/passwd", "run-1/../../x.png", ""])
    def test_resolve_rejects_traversal(self, storage: FileStorage, relative: str):
        with pytest.raises(InvalidPathError, match="Invalid path"):
            storage.resolve_output(relative)

    def test_resolve_missing(self, storage: FileStorage):
        with pytest.raises(StorageError, match="File not found"):
            storage.resolve_output("run-1/none.png")

    def test_missing_file_is_not_a_path_error(self, storage: FileStorage):
        with pytest.raises(StorageError) as exc_info:
            storage.resolve_output("run-1/none.png")
        assert not isinstance(exc_info.value, InvalidPathError)

    def test_delete_run_outputs(self, storage: FileStorage, png_bytes: bytes):
        storage.save_output("run-1", 0, png_bytes, "image/png")
        storage.save_output("run-2", 0, png_bytes, "image/png")
        storage.delete_run_outputs("run-1")
        assert not (storage.outputs_dir / "run-1").exists()
        assert (storage.outputs_dir / "run-2").is_dir()

    def test_delete_missing_run_is_noop(self, storage: FileStorage):
        storage.delete_run_outputs("never-ran")


@pytest.mark.parametrize(
    ("mime_type", "extension"),
    [("image/png", ".png"), ("image/jpeg", ".jpg"), ("image/webp", ".jpg")],
)
def test_output_extension(mime_type: str, extension: str):
    assert output_extension(mime_type) == extension
