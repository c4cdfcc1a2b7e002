"""
Notivate Backend - Transient Upload Store
===========================================

What:  Validates an uploaded image, writes it to a unique temporary file for
       the duration of one transform, and guarantees the file is removed.
How:   `acquire()` is an async context manager: validate → write (aiofiles)
       → yield StoredUpload → dispose in `finally`. Every exit path, including
       exceptions and task cancellation, runs the disposal exactly once.
Who:   TransformationOrchestrator (one acquire per request).

Security Model:
    1. Extension check against the accepted image set
    2. Declared media type must be an image subtype from the same set
    3. Size bounded (empty and >10 MiB rejected) before anything touches disk
    4. Generated filename: no user input reaches the filesystem path

File naming:
    <upload_dir>/<time_ns>-<uuid4 hex><ext>
    e.g. tmp/uploads/1718035200123456789-3f2c9a0e6b1d4e8fa4c7d2b5e1f09a33.jpg
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles

from notivate.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

# ── Accepted Image Types ──────────────────────────────────────────────────
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".gif"}
ALLOWED_MEDIA_SUBTYPES = {"jpeg", "jpg", "png", "webp", "heic", "gif"}

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


@dataclass
class StoredUpload:
    """An uploaded image living on disk for the duration of one request."""

    path: Path
    original_filename: str
    content_type: str
    size: int
    released: bool = False


class UploadStore:
    """
    Owns the temporary upload directory.

    `disposed_count` counts successful releases; tests use it to assert that
    each acquired file is released exactly once.
    """

    def __init__(self, upload_dir: str, max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        self.upload_dir = Path(upload_dir).resolve()
        self.max_file_size = max_file_size
        self.disposed_count = 0
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("UploadStore initialized with upload_dir=%s", self.upload_dir)

    # ── Validation ────────────────────────────────────────────────────────
    def validate(self, filename: Optional[str], content: bytes, content_type: Optional[str]) -> str:
        """
        Checks extension, declared media type and size.

        Returns:
            The normalized extension (lowercase, with dot).

        Raises:
            ValidationError: on the first failed check.
        """
        if not filename:
            raise ValidationError(message="No image file provided", field="image")

        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="image",
                context={"extension": ext},
            )

        media_type = (content_type or "").split(";")[0].strip().lower()
        main_type, _, subtype = media_type.partition("/")
        if main_type != "image" or subtype not in ALLOWED_MEDIA_SUBTYPES:
            raise ValidationError(
                message=f"Content type '{content_type}' is not an accepted image type.",
                field="image",
                context={"content_type": content_type},
            )

        size = len(content)
        if size == 0:
            raise ValidationError(message="The uploaded image is empty.", field="image")
        if size > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=(
                    f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB."
                ),
                field="image",
                context={"max_size": self.max_file_size, "actual_size": size},
            )
        return ext

    def _generate_path(self, extension: str) -> Path:
        return self.upload_dir / f"{time.time_ns()}-{uuid.uuid4().hex}{extension}"

    # ── Lifecycle ─────────────────────────────────────────────────────────
    async def store(
        self, filename: str, content: bytes, content_type: Optional[str]
    ) -> StoredUpload:
        """
        Validates and writes the upload. Prefer `acquire()`, which also
        guarantees disposal.

        Raises:
            ValidationError: invalid upload (nothing written).
            FileStorageError: the write failed (partial file removed).

        A write interrupted by cancellation also removes the partial file.
        """
        ext = self.validate(filename, content, content_type)
        path = self._generate_path(ext)
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store upload at %s: %s", path.name, e)
            path.unlink(missing_ok=True)
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            ) from e
        except BaseException:
            # Cancelled mid-write: acquire() has not taken ownership yet
            path.unlink(missing_ok=True)
            raise

        logger.debug("Upload stored: %s (%d bytes)", path.name, len(content))
        return StoredUpload(
            path=path,
            original_filename=filename,
            content_type=content_type or "",
            size=len(content),
        )

    async def dispose(self, upload: StoredUpload) -> None:
        """
        Removes the temporary file. Idempotent: a second call is a no-op.

        Removal errors are logged, not raised; the request outcome is already
        decided by the time disposal runs.
        """
        if upload.released:
            return
        upload.released = True
        self.disposed_count += 1
        try:
            # Synchronous unlink: runs to completion even inside a cancelled task
            upload.path.unlink()
            logger.debug("Disposed upload: %s", upload.path.name)
        except FileNotFoundError:
            logger.debug("Dispose: file already gone: %s", upload.path.name)
        except OSError as e:
            logger.warning("Failed to remove upload %s: %s", upload.path.name, e)

    @asynccontextmanager
    async def acquire(
        self, filename: str, content: bytes, content_type: Optional[str]
    ) -> AsyncIterator[StoredUpload]:
        """
        Scoped acquisition: the yielded upload is disposed on every exit path.

        Example:
            async with store.acquire("notes.jpg", data, "image/jpeg") as upload:
                text = await extractor.extract_text(data)
        """
        upload = await self.store(filename, content, content_type)
        try:
            yield upload
        finally:
            await self.dispose(upload)
