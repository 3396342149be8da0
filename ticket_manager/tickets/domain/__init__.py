"""
Ticket Domain Layer
===================

Contains:
- Entities: Ticket, TicketMetadata, TicketSummary, SearchTicketResult, LazyLoad
- Value Objects: EnumParser, TimeZoneHelper

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticket_manager.tickets.domain.entities import (
    LazyLoad,
    SearchTicketResult,
    Ticket,
    TicketMetadata,
    TicketSummary,
)
from ticket_manager.tickets.domain.value_objects import EnumParser, TimeZoneHelper

__all__ = [
    # Entities
    "Ticket",
    "TicketMetadata",
    "TicketSummary",
    "SearchTicketResult",
    "LazyLoad",
    # Value Objects
    "EnumParser",
    "TimeZoneHelper",
]
