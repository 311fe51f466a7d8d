"""
Local-disk blob storage for uploaded files.

Files are written under ``root/<folder>/<uuid>_<name>`` and addressed by a
reference of the form ``<url_prefix>/<folder>/<uuid>_<name>``, which is also
the URL the static mount serves them from.
"""
import logging
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile

from app.core.config import (
    ALLOWED_UPLOAD_TYPES,
    MAX_UPLOAD_BYTES,
    UPLOAD_CHUNK_SIZE,
    UPLOAD_DIR,
    UPLOAD_URL_PREFIX,
)
from app.core.errors import InvalidInput, StorageFailure

logger = logging.getLogger(__name__)


def _safe_name(filename: str | None) -> str:
    # keep basename only, strip directories
    name = Path(filename or "upload").name.strip()
    return name.replace(" ", "_") or "upload"


class LocalBlobStore:
    def __init__(
        self,
        root: Path = UPLOAD_DIR,
        url_prefix: str = UPLOAD_URL_PREFIX,
        max_bytes: int = MAX_UPLOAD_BYTES,
        allowed_types: set[str] | None = None,
    ):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes
        self.allowed_types = ALLOWED_UPLOAD_TYPES if allowed_types is None else allowed_types

    def store(self, upload: UploadFile, folder: str) -> str:
        """Stream ``upload`` to disk and return its reference.

        Raises InvalidInput for disallowed, empty or over-size files (nothing
        is left on disk) and StorageFailure when the disk write fails.
        """
        if self.allowed_types and upload.content_type not in self.allowed_types:
            raise InvalidInput(
                f"Invalid file type {upload.content_type!r}: only PDF, DOC, PPT, text and images allowed"
            )

        unique_name = f"{uuid4().hex}_{_safe_name(upload.filename)}"
        reference = f"{self.url_prefix}/{folder}/{unique_name}"
        dest = self.path_for(reference)

        total = 0
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with dest.open("wb") as out:
                while True:
                    chunk = upload.file.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self.max_bytes:
                        break
                    out.write(chunk)
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise StorageFailure("Could not store uploaded file") from exc

        if total > self.max_bytes:
            dest.unlink(missing_ok=True)
            raise InvalidInput(f"File exceeds the {self.max_bytes} byte limit")
        if total == 0:
            dest.unlink(missing_ok=True)
            raise InvalidInput("Uploaded file is empty")

        logger.info("stored upload %s (%d bytes)", reference, total)
        return reference

    def delete(self, reference: str) -> None:
        """Best-effort removal; failures are logged and swallowed."""
        try:
            path = self.path_for(reference)
        except ValueError:
            logger.warning("refusing to delete unknown blob reference %r", reference)
            return

        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("could not delete blob %s", reference, exc_info=True)
            return
        logger.info("deleted blob %s", reference)

    def path_for(self, reference: str) -> Path:
        prefix = self.url_prefix + "/"
        if not reference.startswith(prefix):
            raise ValueError(f"not a blob reference: {reference!r}")

        root = self.root.resolve()
        path = (root / reference[len(prefix):]).resolve()
        if root not in path.parents:
            raise ValueError(f"blob reference escapes upload dir: {reference!r}")
        return path

    def is_under(self, reference: str | None, folder: str) -> bool:
        """True if ``reference`` names a stored file inside ``folder``."""
        if not reference or not reference.startswith(f"{self.url_prefix}/{folder}/"):
            return False
        try:
            path = self.path_for(reference)
        except ValueError:
            return False
        return (self.root.resolve() / folder) in path.parents
