"""
Attachment Storage
==================

Stores ticket attachments on the local filesystem under
``<root>/Ticket No.<id>/<file name>``.

Blocking filesystem calls run in a worker thread via ``asyncio.to_thread``.
"""

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from ticket_manager.core.exceptions import (
    AttachmentStorageException,
    ConflictException,
    ValidationException,
)
from ticket_manager.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttachmentFile:
    """An uploaded file handed to the ticket manager."""

    file_name: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class AttachmentStorage:
    """Filesystem store for ticket attachments."""

    def __init__(self, root: Path | str = "UploadedFiles", max_files: int = 2):
        self.root = Path(root)
        self.max_files = max_files

    # ========== Validation ==========

    @staticmethod
    def validate_file_name(file_name: str) -> str:
        if not file_name or not file_name.strip():
            raise ValidationException("Attachment file name cannot be empty.")
        if ".." in file_name or "/" in file_name or "\\" in file_name:
            raise ValidationException(f"Invalid file name: {file_name}")
        return file_name

    @staticmethod
    def files_are_equal(first: AttachmentFile, second: AttachmentFile) -> bool:
        """Same size and byte-for-byte equal content."""
        return first.size == second.size and first.content == second.content

    def validate_batch(self, files: Sequence[AttachmentFile]) -> None:
        """
        Check an upload batch before anything is written.

        Raises:
            ValidationException: too many files, bad names or identical files
            ConflictException: two files share a name
        """
        if len(files) > self.max_files:
            raise ValidationException(f"You can upload a maximum of {self.max_files} files.")

        seen = set()
        for attachment in files:
            self.validate_file_name(attachment.file_name)
            key = attachment.file_name.lower()
            if key in seen:
                raise ConflictException(f"Duplicate file name: {attachment.file_name}")
            seen.add(key)

        for i, first in enumerate(files):
            for second in files[i + 1:]:
                if self.files_are_equal(first, second):
                    raise ValidationException(
                        f"Files '{first.file_name}' and '{second.file_name}' are identical."
                    )

    # ========== Paths ==========

    def ticket_dir(self, ticket_id: int) -> Path:
        return self.root / f"Ticket No.{ticket_id}"

    def path_for(self, ticket_id: int, file_name: str) -> Path:
        return self.ticket_dir(ticket_id) / self.validate_file_name(file_name)

    def resolve(self, stored_path: str) -> Path:
        """Resolve a stored attachment path, refusing paths outside the root."""
        path = Path(stored_path)
        root = self.root.resolve()
        resolved = path.resolve()
        if resolved != root and root not in resolved.parents:
            raise ValidationException(f"Invalid attachment path: {stored_path}")
        return resolved

    # ========== Read / write ==========

    async def save(self, ticket_id: int, files: Iterable[AttachmentFile]) -> List[str]:
        """Write files into the ticket folder and return their stored paths."""
        written: List[Path] = []
        try:
            for attachment in files:
                path = self.path_for(ticket_id, attachment.file_name)
                await asyncio.to_thread(self._write, path, attachment.content)
                written.append(path)
        except OSError as exc:
            for path in written:
                await self.delete_file_with_retry(path)
            raise AttachmentStorageException(
                f"Failed to store attachments for ticket {ticket_id}.",
                {"ticket_id": ticket_id, "error": str(exc)},
            ) from exc

        logger.info(
            "Stored attachments",
            extra={"ticket_id": ticket_id, "files": [p.name for p in written]},
        )
        return [str(p) for p in written]

    async def read(self, stored_path: str) -> bytes:
        path = self.resolve(stored_path)
        if not await asyncio.to_thread(path.is_file):
            raise FileNotFoundError(stored_path)
        return await asyncio.to_thread(path.read_bytes)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    # ========== Delete ==========

    async def delete_file_with_retry(
        self,
        path: Path | str,
        max_retries: int = 5,
        delay_seconds: float = 0.5,
    ) -> bool:
        """
        Delete a file, retrying while it is locked by another process.

        Returns False when the file did not exist.
        """
        path = Path(path)
        for attempt in range(1, max_retries + 1):
            try:
                await asyncio.to_thread(path.unlink)
                return True
            except FileNotFoundError:
                return False
            except OSError as exc:
                if attempt == max_retries:
                    raise AttachmentStorageException(
                        f"Failed to delete file {path.name} after {max_retries} attempts.",
                        {"path": str(path)},
                    ) from exc
                logger.warning(
                    "File delete failed, retrying",
                    extra={"path": str(path), "attempt": attempt, "error": str(exc)},
                )
                await asyncio.sleep(delay_seconds)
        return False

    async def delete_directory_with_retry(
        self,
        path: Path | str,
        max_retries: int = 5,
        delay_seconds: float = 0.005,
    ) -> bool:
        path = Path(path)
        for attempt in range(1, max_retries + 1):
            if not await asyncio.to_thread(path.exists):
                return False
            try:
                await asyncio.to_thread(shutil.rmtree, path)
                return True
            except OSError as exc:
                if attempt == max_retries:
                    raise AttachmentStorageException(
                        f"Failed to delete directory {path} after {max_retries} attempts.",
                        {"path": str(path)},
                    ) from exc
                await asyncio.sleep(delay_seconds)
        return False

    async def delete_ticket_files(self, ticket_id: int, attachments: Iterable[str]) -> None:
        """Remove every attachment of a ticket and then its folder."""
        for stored_path in attachments:
            await self.delete_file_with_retry(stored_path)
        await self.delete_directory_with_retry(self.ticket_dir(ticket_id))


__all__ = ["AttachmentFile", "AttachmentStorage"]
