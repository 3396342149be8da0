"""
Ticket Interfaces Layer
=======================

FastAPI route handlers for the ticket module.

This is the outermost layer - handles HTTP requests/responses and
delegates to ``ManageTickets``.
"""

from ticket_manager.tickets.interfaces.controllers import tickets_router

__all__ = ["tickets_router"]
