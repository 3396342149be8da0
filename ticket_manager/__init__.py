"""
Ticket Manager
==============

Ticket-management backend over PostgreSQL, MySQL or SQL Server.
"""

__version__ = "1.0.0"
