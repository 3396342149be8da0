"""
Ticket Application Layer
========================

Contains:
- DTOs: request and response models for the API
- Pagination: DataService and LazyLoadManager
- Services: ITicketManager and ManageTickets (import from ``services``)
"""

from ticket_manager.tickets.application.dto import (
    CreateTicketDTO,
    UpdateAssigneeDTO,
    UpdateDescriptionDTO,
    UpdateTicketDTO,
    UpdateTitleDTO,
)
from ticket_manager.tickets.application.pagination import DataService, LazyLoadManager

__all__ = [
    "CreateTicketDTO",
    "UpdateTicketDTO",
    "UpdateTitleDTO",
    "UpdateDescriptionDTO",
    "UpdateAssigneeDTO",
    "DataService",
    "LazyLoadManager",
]
