"""
Ticket Domain Entities
======================

Plain dataclasses returned by the data-access layer.

Status, priority and tag are kept in their stored string form because the
enumerations are supplied by the caller of the ticket manager.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


def attachment_name(stored_path: str) -> str:
    """File name part of a stored attachment path."""
    return stored_path.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass
class TicketMetadata:
    """A key/value pair attached to a ticket."""

    key: str
    value: str
    id: Optional[int] = None
    ticket_id: Optional[int] = None


@dataclass
class Ticket:
    """
    Ticket entity.

    Datetimes are always timezone-aware UTC.
    """

    ticket_id: int
    creator_email: str
    title: str
    description: str
    priority: str
    tag: str
    ticket_status: str
    created_date: datetime
    updated_date: datetime
    assignee_email: Optional[str] = None
    promise_date: Optional[datetime] = None
    additional_info: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    ccs: List[str] = field(default_factory=list)
    metadata: List[TicketMetadata] = field(default_factory=list)

    @property
    def attachment_names(self) -> List[str]:
        """File names of the stored attachments."""
        return [attachment_name(path) for path in self.attachments]

    def find_attachment(self, file_name: str) -> Optional[str]:
        """Stored path of the attachment named file_name, matched case-insensitively."""
        wanted = file_name.lower()
        for path, name in zip(self.attachments, self.attachment_names):
            if name.lower() == wanted:
                return path
        return None


@dataclass
class TicketSummary:
    """Editable projection of a ticket, returned by ad-hoc filters."""

    title: str
    description: str
    ticket_status: str
    tag: str
    priority: str
    creator_email: str
    assignee_email: Optional[str] = None
    additional_info: Optional[str] = None
    promise_date: Optional[datetime] = None
    ccs: List[str] = field(default_factory=list)


@dataclass
class SearchTicketResult:
    """One page of search results plus the unpaged total."""

    tickets: List[Ticket]
    total_count: int


@dataclass
class LazyLoad(Generic[T]):
    """A batch of items and the cursor for the next one."""

    result: List[T]
    has_more_records: bool
    next_from: int
