"""
Shared Kernel Module
====================

Generic infrastructure used by the ticket module: structured logging and
HTTP middleware.

DO NOT add ticket business logic to the shared kernel.
"""
