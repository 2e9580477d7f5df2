"""Local file storage for payment proof uploads."""
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import structlog

from src.config.settings import settings

logger = structlog.get_logger(__name__)

PROOF_FOLDER = "payment-proofs"

# Allowed content types
ALLOWED_PROOF_TYPES = {"image/jpeg", "image/png", "application/pdf"}


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class FileTooLargeError(StorageError):
    """File exceeds maximum allowed size."""

    pass


class InvalidContentTypeError(StorageError):
    """File content type is not allowed."""

    pass


class ProofStorage:
    """Stores uploaded payment proofs under ``LOCAL_STORAGE_PATH``.

    Files are addressed by a ``file_id`` that is their path relative to the
    storage root.
    """

    def __init__(self, root: str | Path | None = None, max_size: int | None = None):
        self.root = Path(root or settings.LOCAL_STORAGE_PATH)
        self.max_size = max_size or settings.MAX_PROOF_SIZE

    def _generate_file_path(self, owner_id: str, extension: str = "") -> str:
        """Generate a unique file path for storage."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d")
        unique_id = uuid.uuid4().hex[:12]
        return f"{PROOF_FOLDER}/{owner_id}/{timestamp}_{unique_id}{extension}"

    def _get_extension_from_content_type(self, content_type: str) -> str:
        extensions = {
            "image/jpeg": ".jpg",
            "image/png": ".png",
            "application/pdf": ".pdf",
        }
        return extensions.get(content_type, "")

    def _validate_file(self, content_type: str, file_size: int) -> None:
        """Validate file type and size."""
        if content_type not in ALLOWED_PROOF_TYPES:
            raise InvalidContentTypeError(
                f"Tipo de arquivo '{content_type}' não permitido. "
                f"Permitidos: {', '.join(sorted(ALLOWED_PROOF_TYPES))}"
            )

        if file_size > self.max_size:
            max_mb = self.max_size / (1024 * 1024)
            raise FileTooLargeError(
                f"Arquivo de {file_size / (1024 * 1024):.1f}MB excede "
                f"o máximo permitido de {max_mb:.0f}MB"
            )

    def _resolve(self, file_id: str) -> Path:
        root = self.root.resolve()
        path = (root / file_id).resolve()
        if root not in path.parents:
            raise StorageError(f"Invalid file id: {file_id}")
        return path

    async def save_proof(
        self,
        owner_id: str,
        file_content: bytes,
        content_type: str,
        filename: str | None = None,
    ) -> dict[str, Any]:
        """Validate and write a proof file.

        Returns the proof metadata stored on the renewal request.

        Raises:
            InvalidContentTypeError: If content type is not JPEG, PNG or PDF
            FileTooLargeError: If file exceeds the configured maximum
            StorageError: If the write fails
        """
        self._validate_file(content_type, len(file_content))

        extension = self._get_extension_from_content_type(content_type)
        file_id = self._generate_file_path(owner_id, extension)
        local_path = self.root / file_id

        try:
            await aiofiles.os.makedirs(local_path.parent, exist_ok=True)
            async with aiofiles.open(local_path, "wb") as f:
                await f.write(file_content)
        except OSError as e:
            logger.error("proof_upload_failed", file_id=file_id, error=str(e))
            raise StorageError(f"Falha ao salvar arquivo: {e}") from e

        logger.info("proof_uploaded", file_id=file_id, size=len(file_content))
        return {
            "kind": "file",
            "file_id": file_id,
            "filename": filename or Path(file_id).name,
            "content_type": content_type,
            "size": len(file_content),
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        }

    async def read_proof(self, file_id: str) -> bytes:
        """Read a stored proof. Raises StorageError when it is missing."""
        path = self._resolve(file_id)
        if not await aiofiles.os.path.exists(path):
            raise StorageError(f"File not found: {file_id}")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete_proof(self, file_id: str) -> bool:
        try:
            path = self._resolve(file_id)
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
                logger.info("proof_deleted", file_id=file_id)
                return True
            return False
        except (StorageError, OSError) as e:
            logger.error("proof_delete_failed", file_id=file_id, error=str(e))
            return False


# Singleton instance
proof_storage = ProofStorage()


def get_proof_storage() -> ProofStorage:
    """Dependency returning the proof storage."""
    return proof_storage
