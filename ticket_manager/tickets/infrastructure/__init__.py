"""
Ticket Infrastructure Layer
===========================

Contains:
- Models: SQLAlchemy tables for tickets, metadata and schema history
- Repositories: BaseTicketRepository plus one provider per backend
- Filters: ready-made conditions for ``filter_ticket_by``
"""

from ticket_manager.tickets.infrastructure.filters import TicketFilters
from ticket_manager.tickets.infrastructure.models import (
    SchemaHistoryModel,
    TicketMetadataModel,
    TicketModel,
)
from ticket_manager.tickets.infrastructure.providers import (
    MySQLTicketRepository,
    PostgreSQLTicketRepository,
    SQLServerTicketRepository,
)
from ticket_manager.tickets.infrastructure.repositories import BaseTicketRepository

__all__ = [
    "TicketModel",
    "TicketMetadataModel",
    "SchemaHistoryModel",
    "BaseTicketRepository",
    "PostgreSQLTicketRepository",
    "MySQLTicketRepository",
    "SQLServerTicketRepository",
    "TicketFilters",
]
