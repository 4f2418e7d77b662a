"""File storage for uploaded reference images and generated step outputs.

Uploads live in ``uploads_dir`` and are addressed by their public path
``/uploads/<stored-name>``.  Generated images live in
``outputs_dir/<run_id>/`` and are addressed as ``/api/outputs/<run_id>/<file>``.
Those public paths are what the database stores, so every lookup resolves
them back onto disk and refuses anything that would escape the storage
directories.
"""

from __future__ import annotations

import io
import logging
import shutil
import uuid
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"
OUTPUTS_PREFIX = "/api/outputs/"

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

# Pillow format name -> (MIME type, file extension)
_PIL_FORMATS = {
    "PNG": ("image/png", ".png"),
    "JPEG": ("image/jpeg", ".jpg"),
    "GIF": ("image/gif", ".gif"),
    "WEBP": ("image/webp", ".webp"),
}


class StorageError(Exception):
    """Raised for unsafe paths, missing files, or unusable uploads.

    The message is intended to be returned directly to the API client.
    """

    pass


class InvalidPathError(StorageError):
    """Raised when a path is empty or would escape its storage directory."""

    pass


def sniff_image(content: bytes) -> tuple[str, str]:
    """Identify an image with Pillow.

    Args:
        content: Raw file bytes

    Returns:
        Tuple of ``(mime_type, extension)``

    Raises:
        StorageError: If the bytes are not a supported image
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise StorageError(f"Not a valid image: {e}") from e

    if image_format not in _PIL_FORMATS:
        raise StorageError(f"Unsupported image format: {image_format}")
    return _PIL_FORMATS[image_format]


def output_extension(mime_type: str) -> str:
    """Return the file extension used for a generated image."""
    return ".png" if "png" in mime_type else ".jpg"


class FileStorage:
    """Read and write the images the lab works with."""

    def __init__(self, uploads_dir: Path, outputs_dir: Path):
        self.uploads_dir = Path(uploads_dir)
        self.outputs_dir = Path(outputs_dir)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _within(base_dir: Path, relative: str) -> Path:
        """Resolve *relative* under *base_dir*, rejecting traversal."""
        if not relative or ".." in relative.split("/"):
            raise InvalidPathError("Invalid path")

        base_resolved = base_dir.resolve()
        full_path = (base_resolved / relative).resolve()
        if not full_path.is_relative_to(base_resolved):
            logger.warning(f"Path traversal attempt detected: {relative}")
            raise InvalidPathError("Invalid path")
        return full_path

    # -- Uploads ------------------------------------------------------------

    def save_upload(self, filename: str, content: bytes, content_type: str | None = None) -> dict:
        """Store an uploaded reference image under a fresh UUID name.

        The bytes are verified with Pillow.  The client-supplied content type
        is kept when it is a specific image type; otherwise the sniffed type
        is used.

        Args:
            filename: Original client filename (kept for display)
            content: Raw file bytes
            content_type: MIME type reported by the client, if any

        Returns:
            Dictionary with ``filename``, ``path``, and ``mime_type``

        Raises:
            StorageError: If the upload is empty or not an image
        """
        if not content:
            raise StorageError(f"Empty file: {filename}")

        sniffed_type, sniffed_ext = sniff_image(content)
        mime_type = content_type if content_type and content_type.startswith("image/") else sniffed_type

        ext = Path(filename).suffix.lower() or sniffed_ext
        if ext not in CONTENT_TYPES:
            ext = sniffed_ext
        stored_name = f"{uuid.uuid4()}{ext}"
        (self.uploads_dir / stored_name).write_bytes(content)

        logger.info("Stored upload %s as %s (%s)", filename, stored_name, mime_type)
        return {
            "filename": filename,
            "path": f"{UPLOADS_PREFIX}{stored_name}",
            "mime_type": mime_type,
        }

    def read_upload(self, path: str) -> bytes:
        """Read an uploaded image by its public ``/uploads/...`` path.

        Raises:
            StorageError: If the path is unsafe or the file is missing
        """
        relative = path[len(UPLOADS_PREFIX):] if path.startswith(UPLOADS_PREFIX) else path.lstrip("/")
        full_path = self._within(self.uploads_dir, relative)
        if not full_path.is_file():
            raise StorageError(f"File not found: {path}")
        return full_path.read_bytes()

    # -- Outputs ------------------------------------------------------------

    def save_output(self, run_id: str, step_order: int, data: bytes, mime_type: str) -> str:
        """Write a generated image for a run step.

        Returns:
            The public path ``/api/outputs/<run_id>/<file>``
        """
        run_dir = self._within(self.outputs_dir, run_id)
        run_dir.mkdir(parents=True, exist_ok=True)

        filename = f"step-{step_order}-{uuid.uuid4()}{output_extension(mime_type)}"
        (run_dir / filename).write_bytes(data)
        return f"{OUTPUTS_PREFIX}{run_id}/{filename}"

    def resolve_output(self, relative: str) -> tuple[Path, str]:
        """Resolve a path below the outputs directory for serving.

        Args:
            relative: Path after ``/api/outputs/``, e.g. ``<run_id>/<file>``

        Returns:
            Tuple of ``(absolute_path, content_type)``

        Raises:
            StorageError: If the path is unsafe or the file does not exist
        """
        full_path = self._within(self.outputs_dir, relative)
        if not full_path.is_file():
            raise StorageError("File not found")
        content_type = CONTENT_TYPES.get(full_path.suffix.lower(), "application/octet-stream")
        return full_path, content_type

    def delete_run_outputs(self, run_id: str) -> None:
        """Remove every generated image of a run."""
        try:
            run_dir = self._within(self.outputs_dir, run_id)
        except InvalidPathError:
            return
        if run_dir.is_dir() and run_dir != self.outputs_dir.resolve():
            shutil.rmtree(run_dir)
            logger.info(f"Removed outputs for run: {run_id}")
