"""
Tickets Module
==============

Ticket lifecycle over PostgreSQL, MySQL or SQL Server: create, read,
update, delete, search and attachments, with caching and lazy loading.
"""
