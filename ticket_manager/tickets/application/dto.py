"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

Status, priority and tag travel as strings; the ticket manager parses them
against its configured enumerations.
"""

from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


# ========== Request DTOs ==========

class CreateTicketDTO(BaseModel):
    """DTO for creating a ticket."""
    creator_email: str = Field(..., min_length=1, description="Email of the user creating the ticket")
    title: str = Field(..., min_length=1, max_length=100, description="Ticket title, unique")
    description: str = Field(..., min_length=3, max_length=200, description="Ticket description")
    assignee_email: Optional[str] = Field(None, description="Assignee email")
    ticket_status: Optional[str] = Field(None, description="Status; first status when omitted")
    priority: Optional[str] = Field(None, description="Priority; first priority when omitted")
    tag: Optional[str] = Field(None, description="Tag; first tag when omitted")
    additional_info: Optional[str] = Field(None, description="Free-form notes")
    promise_date: Optional[datetime] = Field(None, description="Promised resolution date")
    metadata: Optional[Dict[str, str]] = Field(None, description="Ticket metadata")
    ccs: Optional[List[str]] = Field(None, description="Emails to keep in copy")


class UpdateTicketDTO(BaseModel):
    """DTO for a partial ticket update; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=3, max_length=200)
    assignee_email: Optional[str] = None
    ticket_status: Optional[str] = None
    priority: Optional[str] = None
    tag: Optional[str] = None
    additional_info: Optional[str] = None
    promise_date: Optional[datetime] = None
    metadata: Optional[Dict[str, str]] = None
    ccs: Optional[List[str]] = None


class UpdateTitleDTO(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)


class UpdateDescriptionDTO(BaseModel):
    description: str = Field(..., min_length=3, max_length=200)


class UpdateAssigneeDTO(BaseModel):
    assignee_email: str = Field(..., min_length=1)


class UpdateStatusDTO(BaseModel):
    status: str = Field(..., description="New ticket status")


class UpdatePriorityDTO(BaseModel):
    priority: str = Field(..., description="New ticket priority")


class UpdateTagDTO(BaseModel):
    tag: str = Field(..., description="New ticket tag")


# ========== Response DTOs ==========

class TicketMetadataResponse(BaseModel):
    """Response model for one metadata entry."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    key: str
    value: str


class TicketResponse(BaseModel):
    """Response model for a ticket."""
    model_config = ConfigDict(from_attributes=True)

    ticket_id: int
    creator_email: str
    title: str
    description: str
    assignee_email: Optional[str] = None
    priority: str
    tag: str
    ticket_status: str
    created_date: datetime
    updated_date: datetime
    promise_date: Optional[datetime] = None
    additional_info: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    ccs: List[str] = Field(default_factory=list)
    metadata: List[TicketMetadataResponse] = Field(default_factory=list)


class TicketSummaryResponse(BaseModel):
    """Response model for filtered ticket listings."""
    model_config = ConfigDict(from_attributes=True)

    title: str
    description: str
    ticket_status: str
    tag: str
    priority: str
    creator_email: str
    assignee_email: Optional[str] = None
    additional_info: Optional[str] = None
    promise_date: Optional[datetime] = None
    ccs: List[str] = Field(default_factory=list)


class SearchTicketsResponse(BaseModel):
    """Response model for a page of search results."""
    total_count: int = Field(..., ge=0, description="Matches before paging")
    page_number: int
    page_size: int
    tickets: List[TicketResponse]


class LazyLoadResponse(BaseModel, Generic[T]):
    """Response model for a lazily loaded batch."""
    items: List[T]
    has_more_records: bool
    next_from: int


class CountResponse(BaseModel):
    count: int = Field(..., ge=0)


class MessageResponse(BaseModel):
    message: str
    ticket_id: Optional[int] = None


class AttachmentListResponse(BaseModel):
    ticket_id: int
    attachments: List[str]

    @field_validator("attachments")
    @classmethod
    def validate_attachments(cls, v: List[str]) -> List[str]:
        """Expose only file names, never server paths."""
        return [path.replace("\\", "/").rsplit("/", 1)[-1] for path in v]
