"""Local filesystem blob store for uploaded DICOM files.

Blobs live directly under a single root directory. Every blob gets a fresh
name built from the sanitized client file name plus a random token, so two
uploads with the same display name never collide and a stored name is never
reused. The store knows nothing about metadata records.
"""

import re
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Protocol

import aiofiles
from aiofiles.threadpool.binary import AsyncBufferedReader

from exceptions import BlobNotFoundError, BlobStoreError, UnsafeStoragePathError
from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024
FALLBACK_BASE_NAME = "upload"
MAX_BASE_NAME_BYTES = 200
MAX_SUFFIX_BYTES = 16

_SEPARATORS = re.compile(r"[\\/]")
_INVALID_CHARS = re.compile(r'[\x00-\x1f<>:"|?*]')


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


def display_name(original_name: str) -> str:
    """Final path segment of a client supplied name, for presentation only."""
    return _SEPARATORS.split(original_name or "")[-1].strip() or FALLBACK_BASE_NAME


def sanitize_file_name(original_name: str) -> str:
    """Reduce a client supplied name to a bare, filesystem safe file name.

    Only the final path segment survives, so ``../../etc/passwd`` becomes
    ``passwd``. Characters that are invalid in file names are dropped.
    """
    last_segment = _SEPARATORS.split(original_name or "")[-1]
    cleaned = _INVALID_CHARS.sub("", last_segment).strip()
    if cleaned in ("", ".", ".."):
        return ""
    return cleaned


def build_storage_name(original_name: str) -> str:
    cleaned = sanitize_file_name(original_name)
    suffix = Path(cleaned).suffix if cleaned else ""
    if len(suffix.encode("utf-8")) > MAX_SUFFIX_BYTES:
        suffix = ""
    base = cleaned[: len(cleaned) - len(suffix)] if suffix else cleaned
    # Filesystems cap names at 255 bytes; the token and suffix need the rest.
    base = base.encode("utf-8")[:MAX_BASE_NAME_BYTES].decode("utf-8", "ignore")
    return f"{base or FALLBACK_BASE_NAME}_{uuid.uuid4().hex}{suffix}"


class LocalBlobStore:
    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root)
        self.chunk_size = chunk_size

    def ensure_root(self) -> None:
        if not self.root.exists():
            logger.info(f"Creating blob storage directory at {self.root}")
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, storage_path: str) -> Path:
        root = self.root.resolve()
        candidate = (root / storage_path).resolve()
        if candidate == root or not candidate.is_relative_to(root):
            logger.warning(f"Rejected storage path outside of {root}: '{storage_path}'")
            raise UnsafeStoragePathError(storage_path)
        return candidate

    async def save(self, stream: AsyncReadable, original_name: str) -> str:
        """Write ``stream`` to a new blob and return its relative storage path.

        Raises:
            BlobStoreError: if the medium cannot be written. Not retried.
        """
        storage_name = build_storage_name(original_name)
        full_path = self.resolve(storage_name)

        logger.info(f"Saving blob for '{original_name}' to {full_path}")
        created = False
        try:
            self.ensure_root()
            async with aiofiles.open(full_path, "xb") as out_file:
                created = True
                while chunk := await stream.read(self.chunk_size):
                    await out_file.write(chunk)
        except OSError as e:
            logger.exception(f"Error saving blob for '{original_name}' to {full_path}")
            if created:
                full_path.unlink(missing_ok=True)
            raise BlobStoreError(f"Could not write blob {storage_name}") from e

        return storage_name

    @asynccontextmanager
    async def fetch(self, storage_path: str) -> AsyncIterator[AsyncBufferedReader]:
        full_path = self.resolve(storage_path)
        if not full_path.is_file():
            logger.warning(f"Blob not found at {full_path}")
            raise BlobNotFoundError(storage_path)

        try:
            blob = await aiofiles.open(full_path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(storage_path) from e

        try:
            yield blob
        finally:
            await blob.close()

    async def read_bytes(self, storage_path: str) -> bytes:
        async with self.fetch(storage_path) as blob:
            return await blob.read()
