from pathlib import Path

import pytest

from ticket_manager.core.exceptions import ConflictException, ValidationException
from ticket_manager.infrastructure.storage import AttachmentFile, AttachmentStorage


def test_validate_batch_limits_file_count(storage):
    files = [AttachmentFile(f"{i}.txt", str(i).encode()) for i in range(3)]

    with pytest.raises(ValidationException, match="maximum of 2 files"):
        storage.validate_batch(files)


def test_validate_batch_rejects_duplicate_names(storage):
    files = [AttachmentFile("report.pdf", b"one"), AttachmentFile("REPORT.pdf", b"two")]

    with pytest.raises(ConflictException):
        storage.validate_batch(files)


def test_validate_batch_rejects_identical_content(storage):
    files = [AttachmentFile("a.txt", b"same"), AttachmentFile("b.txt", b"same")]

    with pytest.raises(ValidationException, match="identical"):
        storage.validate_batch(files)


@pytest.mark.parametrize("name", ["", "  ", "../secret", "dir/file.txt", "dir\\file.txt"])
def test_validate_file_name_rejects_unsafe_names(name):
    with pytest.raises(ValidationException):
        AttachmentStorage.validate_file_name(name)


@pytest.mark.asyncio
async def test_save_writes_into_ticket_folder(storage):
    paths = await storage.save(7, [AttachmentFile("notes.txt", b"hello")])

    assert paths == [str(storage.root / "Ticket No.7" / "notes.txt")]
    assert await storage.read(paths[0]) == b"hello"


@pytest.mark.asyncio
async def test_delete_file_with_retry_reports_missing_file(storage):
    assert await storage.delete_file_with_retry(storage.root / "nope.txt") is False


@pytest.mark.asyncio
async def test_delete_ticket_files_removes_folder(storage):
    paths = await storage.save(3, [AttachmentFile("a.txt", b"a"), AttachmentFile("b.txt", b"b")])

    await storage.delete_ticket_files(3, paths)

    assert not storage.ticket_dir(3).exists()
    assert not any(Path(p).exists() for p in paths)


def test_resolve_refuses_paths_outside_root(storage, tmp_path):
    with pytest.raises(ValidationException):
        storage.resolve(str(tmp_path / "elsewhere.txt"))
