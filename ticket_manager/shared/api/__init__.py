"""Shared API middleware and exception handlers."""
