"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle under ``/api/v1/tickets``.

Controllers are thin - they delegate to ``ManageTickets``. Application
exceptions are turned into status codes by the handler registered in
``main.py``.
"""

import asyncio
from dataclasses import replace
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from ticket_manager.config import SearchMode
from ticket_manager.core.exceptions import ResourceNotFoundException
from ticket_manager.infrastructure.storage import AttachmentFile
from ticket_manager.shared.infrastructure.logging import get_logger
from ticket_manager.tickets.application.dto import (
    AttachmentListResponse,
    CountResponse,
    CreateTicketDTO,
    LazyLoadResponse,
    MessageResponse,
    SearchTicketsResponse,
    TicketResponse,
    TicketSummaryResponse,
    UpdateAssigneeDTO,
    UpdateDescriptionDTO,
    UpdatePriorityDTO,
    UpdateStatusDTO,
    UpdateTagDTO,
    UpdateTicketDTO,
    UpdateTitleDTO,
)
from ticket_manager.tickets.application.services import ManageTickets
from ticket_manager.tickets.domain import Ticket, TimeZoneHelper
from ticket_manager.tickets.infrastructure.filters import TicketFilters

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_RESPONSE_EXAMPLE = {
    "ticket_id": 1,
    "creator_email": "jane@example.com",
    "title": "Invoice total is wrong",
    "description": "The March invoice double-counts the support plan.",
    "assignee_email": "billing@example.com",
    "priority": "High",
    "tag": "Billing",
    "ticket_status": "Open",
    "created_date": "2024-03-02T09:15:00Z",
    "updated_date": "2024-03-02T09:15:00Z",
    "promise_date": "2024-03-05T00:00:00Z",
    "additional_info": None,
    "attachments": ["UploadedFiles/Ticket No.1/invoice.pdf"],
    "ccs": ["finance@example.com"],
    "metadata": [{"id": 1, "key": "account", "value": "ACME-42"}]
}


# ========== Dependencies ==========

def get_ticket_manager(request: Request) -> ManageTickets:
    """Ticket manager created during application startup."""
    manager = getattr(request.app.state, "ticket_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ticket service is not available"
        )
    return manager


async def _read_uploads(files: List[UploadFile]) -> List[AttachmentFile]:
    return [AttachmentFile(file_name=f.filename or "", content=await f.read()) for f in files]


def _to_response(ticket: Ticket, time_zone: Optional[str] = None) -> TicketResponse:
    if time_zone:
        ticket = replace(
            ticket,
            created_date=TimeZoneHelper.to_user_timezone(ticket.created_date, time_zone),
            updated_date=TimeZoneHelper.to_user_timezone(ticket.updated_date, time_zone),
            promise_date=TimeZoneHelper.to_user_timezone(ticket.promise_date, time_zone),
        )
    return TicketResponse.model_validate(ticket)


def _summaries(tickets) -> List[TicketSummaryResponse]:
    return [TicketSummaryResponse.model_validate(t) for t in tickets]


# ========== Create ==========

@router.post(
    "/create",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
    description="""
    Create a ticket. Status, priority and tag are matched case-insensitively
    and default to `Open`, `Critical` and `Billing` when omitted.

    Titles are unique: a second ticket with the same title returns 409.
    """,
    responses={
        201: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}},
        400: {"description": "Invalid status, priority, tag or metadata"},
        409: {"description": "Title already used"}
    }
)
async def create_ticket(
    dto: CreateTicketDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    ticket = await manager.create_ticket(dto)
    logger.info("Ticket created via API", extra={"ticket_id": ticket.ticket_id})
    return _to_response(ticket)


# ========== Listing ==========

@router.get("/all", response_model=List[TicketResponse], summary="List tickets page by page")
async def get_all_tickets(
    page_number: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    include_metadata: bool = Query(False),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    tickets = await manager.get_all_tickets(page_number, page_size, include_metadata)
    return [_to_response(t) for t in tickets]


@router.get(
    "/fetch",
    response_model=LazyLoadResponse[TicketResponse],
    summary="Fetch a window of tickets",
    description="Offset-based window ordered by ticket id. Use `next_from` as the next `from_index`."
)
async def fetch_tickets(
    from_index: int = Query(0, ge=0),
    page_size: int = Query(10, ge=1, le=200),
    include_metadata: bool = Query(False),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    tickets = await manager.fetch_tickets(from_index, page_size, include_metadata)
    return LazyLoadResponse[TicketResponse](
        items=[_to_response(t) for t in tickets],
        has_more_records=len(tickets) >= page_size,
        next_from=from_index + len(tickets),
    )


@router.get(
    "/search",
    response_model=SearchTicketsResponse,
    summary="Search tickets",
    description="""
    Free-text search over creator email, title, assignee email and
    description, with optional status/priority/tag filters.

    **sort_by**: `name` (creator), `title`, `assignee`, `createdat`, `updatedat`

    **search_mode**: `Contains`, `StartsWith`, `EndsWith`, `Exact`
    """
)
async def search_tickets(
    search: Optional[str] = Query(None, description="Search term"),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    sort_by: str = Query("name"),
    ascending: bool = Query(True),
    page_number: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    search_mode: SearchMode = Query(SearchMode.CONTAINS),
    include_metadata: bool = Query(False),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    result = await manager.search_tickets(
        search_term=search,
        status=status_filter,
        tag=tag,
        priority=priority,
        sort_by=sort_by,
        ascending=ascending,
        page_number=page_number,
        page_size=page_size,
        search_mode=search_mode,
        include_metadata=include_metadata,
    )
    return SearchTicketsResponse(
        total_count=result.total_count,
        page_number=page_number,
        page_size=page_size,
        tickets=[_to_response(t) for t in result.tickets],
    )


# ========== Filters ==========

@router.get("/search-keywords", response_model=List[TicketSummaryResponse], summary="Filter by keyword")
async def search_by_keyword(
    keyword: str = Query(..., min_length=1),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _summaries(await manager.filter_ticket_by(TicketFilters.keyword(keyword)))


@router.get("/search-assignee", response_model=List[TicketSummaryResponse], summary="Filter by assignee")
@router.get("/assignee", response_model=List[TicketSummaryResponse], include_in_schema=False)
async def search_by_assignee(
    assignee: str = Query(..., min_length=1),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _summaries(await manager.filter_ticket_by(TicketFilters.assignee(assignee)))


@router.get("/search-title", response_model=List[TicketSummaryResponse], summary="Filter by exact title")
async def search_by_title(
    title: str = Query(..., min_length=1),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _summaries(await manager.filter_ticket_by(TicketFilters.title(title)))


@router.get("/search-tag", response_model=List[TicketSummaryResponse], summary="Filter by tag")
async def search_by_tag(
    tag: str = Query(..., min_length=1),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _summaries(await manager.filter_ticket_by(TicketFilters.tag(tag)))


@router.get("/date", response_model=List[TicketSummaryResponse], summary="Tickets promised on a day")
async def search_by_promise_date(
    specific_date: date = Query(...),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _summaries(await manager.filter_ticket_by(TicketFilters.promise_date_on(specific_date)))


@router.get("/date-range", response_model=List[TicketSummaryResponse], summary="Tickets promised in a range")
async def search_by_promise_date_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    condition = TicketFilters.promise_date_between(start_date, end_date)
    return _summaries(await manager.filter_ticket_by(condition))


# ========== By enum value ==========

@router.get("/status", response_model=List[TicketResponse], summary="Tickets with a status")
async def get_by_status(
    value: str = Query(..., alias="status"),
    include_metadata: bool = Query(False),
    page_number: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    tickets = await manager.get_tickets_by_status(value, include_metadata, page_number, page_size)
    return [_to_response(t) for t in tickets]


@router.get("/priority", response_model=List[TicketResponse], summary="Tickets with a priority")
async def get_by_priority(
    value: str = Query(..., alias="priority"),
    include_metadata: bool = Query(False),
    page_number: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    tickets = await manager.get_tickets_by_priority(value, include_metadata, page_number, page_size)
    return [_to_response(t) for t in tickets]


@router.get("/tag", response_model=List[TicketResponse], summary="Tickets with a tag")
async def get_by_tag(
    value: str = Query(..., alias="tag"),
    include_metadata: bool = Query(False),
    page_number: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    tickets = await manager.get_tickets_by_tag(value, include_metadata, page_number, page_size)
    return [_to_response(t) for t in tickets]


# ========== Counts ==========

@router.get("/ticket-count", response_model=CountResponse, summary="Number of tickets")
async def get_ticket_count(manager: ManageTickets = Depends(get_ticket_manager)):
    return CountResponse(count=await manager.get_number_of_tickets())


@router.get("/count-by-status", response_model=CountResponse)
async def count_by_status(
    value: str = Query(..., alias="status"),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return CountResponse(count=await manager.get_number_of_tickets_by_status(value))


@router.get("/count-by-priority", response_model=CountResponse)
async def count_by_priority(
    value: str = Query(..., alias="priority"),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return CountResponse(count=await manager.get_number_of_tickets_by_priority(value))


@router.get("/count-by-tag", response_model=CountResponse)
async def count_by_tag(
    value: str = Query(..., alias="tag"),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return CountResponse(count=await manager.get_number_of_tickets_by_tag(value))


# ========== Attachments download ==========

@router.get(
    "/downloadfile",
    response_class=FileResponse,
    summary="Download an attachment",
    responses={404: {"description": "Ticket or attachment not found"}}
)
async def download_file(
    ticket_id: int = Query(..., ge=1),
    file_name: str = Query(..., min_length=1),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    ticket = await manager.get_ticket_by_id(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", str(ticket_id))

    stored_path = ticket.find_attachment(file_name)
    if stored_path is None:
        raise ResourceNotFoundException("Attachment", file_name)

    path = manager.provider.storage.resolve(stored_path)
    if not await asyncio.to_thread(path.is_file):
        raise ResourceNotFoundException("Attachment", file_name)

    return FileResponse(path, filename=path.name, media_type="application/octet-stream")


# ========== Single ticket ==========

@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket",
    description="Dates are returned in UTC unless `timezone` names an IANA zone such as `Europe/Paris`.",
    responses={
        200: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}},
        404: {"description": "Ticket not found"}
    }
)
async def get_ticket(
    ticket_id: int,
    include_metadata: bool = Query(False),
    time_zone: Optional[str] = Query(None, alias="timezone"),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    ticket = await manager.get_ticket_by_id(ticket_id, include_metadata)
    if ticket is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ticket {ticket_id} not found"
        )
    return _to_response(ticket, time_zone)


@router.patch("/{ticket_id}", response_model=TicketResponse, summary="Update a ticket")
async def update_ticket(
    ticket_id: int,
    dto: UpdateTicketDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket(ticket_id, dto))


@router.patch("/{ticket_id}/title", response_model=TicketResponse)
async def update_title(
    ticket_id: int,
    dto: UpdateTitleDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_title(ticket_id, dto))


@router.patch("/{ticket_id}/assignee", response_model=TicketResponse)
async def update_assignee(
    ticket_id: int,
    dto: UpdateAssigneeDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_assignee(ticket_id, dto))


@router.patch("/{ticket_id}/description", response_model=TicketResponse)
async def update_description(
    ticket_id: int,
    dto: UpdateDescriptionDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_description(ticket_id, dto))


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def update_status(
    ticket_id: int,
    dto: UpdateStatusDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_status(ticket_id, dto.status))


@router.patch("/{ticket_id}/priority", response_model=TicketResponse)
async def update_priority(
    ticket_id: int,
    dto: UpdatePriorityDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_priority(ticket_id, dto.priority))


@router.patch("/{ticket_id}/tag", response_model=TicketResponse)
async def update_tag(
    ticket_id: int,
    dto: UpdateTagDTO,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    return _to_response(await manager.update_ticket_tag(ticket_id, dto.tag))


@router.get("/{ticket_id}/attachments", response_model=AttachmentListResponse, summary="List attachments")
async def list_attachments(
    ticket_id: int,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    ticket = await manager.get_ticket_by_id(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", str(ticket_id))
    return AttachmentListResponse(ticket_id=ticket_id, attachments=ticket.attachments)


@router.post(
    "/{ticket_id}/attachments",
    response_model=TicketResponse,
    summary="Add attachments",
    description="Upload up to two new files. Names must not clash with existing attachments."
)
async def add_attachments(
    ticket_id: int,
    files: List[UploadFile] = File(...),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    uploads = await _read_uploads(files)
    return _to_response(await manager.update_ticket_attachment(ticket_id, uploads))


@router.put(
    "/{ticket_id}/attachments/{file_name}",
    response_model=TicketResponse,
    summary="Replace an attachment",
    description="Replace the attachment named `file_name` with up to two new files."
)
async def replace_attachment(
    ticket_id: int,
    file_name: str,
    files: List[UploadFile] = File(...),
    manager: ManageTickets = Depends(get_ticket_manager)
):
    uploads = await _read_uploads(files)
    return _to_response(await manager.update_ticket_attachment(ticket_id, uploads, file_name))


@router.delete("/{ticket_id}", response_model=MessageResponse, summary="Delete a ticket")
async def delete_ticket(
    ticket_id: int,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    await manager.delete_ticket(ticket_id)
    return MessageResponse(message="Ticket deleted successfully.", ticket_id=ticket_id)


@router.delete("/{ticket_id}/attachments/{file_name}", response_model=MessageResponse)
async def delete_attachment(
    ticket_id: int,
    file_name: str,
    manager: ManageTickets = Depends(get_ticket_manager)
):
    await manager.delete_attachment(ticket_id, file_name)
    return MessageResponse(message=f"Attachment '{file_name}' deleted.", ticket_id=ticket_id)


# Export router
tickets_router = router
