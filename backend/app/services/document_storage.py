"""
Storage for uploaded claim document bytes.

Only metadata lives in the database; the bytes are handed to a storage
backend which returns the location they were written to.
"""
import os
import uuid
from typing import Protocol

from app.core.logging import get_logger

logger = get_logger(__name__)


class DocumentStorage(Protocol):
    def store(self, claim_id: int, file_name: str, content: bytes) -> str:
        """Persist ``content`` and return its storage location."""
        ...

    def delete(self, location: str) -> None:
        ...


class LocalDocumentStorage:
    """Writes documents below ``UPLOAD_DIR/<claim id>/``."""

    def __init__(self, root: str):
        self.root = root

    def store(self, claim_id: int, file_name: str, content: bytes) -> str:
        upload_dir = os.path.join(self.root, str(claim_id))
        os.makedirs(upload_dir, exist_ok=True)

        file_ext = os.path.splitext(file_name)[1] if file_name else ""
        stored_filename = f"{uuid.uuid4()}{file_ext}"
        file_path = os.path.join(upload_dir, stored_filename)

        with open(file_path, "wb") as f:
            f.write(content)

        logger.info(f"Stored {len(content)} bytes for claim {claim_id} at {file_path}")
        return file_path

    def delete(self, location: str) -> None:
        """Remove a stored file; used when the metadata insert fails."""
        try:
            os.remove(location)
        except FileNotFoundError:
            logger.warning(f"Stored document already missing: {location}")
