"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket tables.

The column types are portable across PostgreSQL, MySQL and SQL Server;
list-valued fields are stored as JSON.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticket_manager.infrastructure.database import Base

# Bumped whenever the ticket tables change shape
SCHEMA_VERSION = "0001_initial_ticket_schema"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    ticket_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    assignee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Stored enum values
    priority: Mapped[str] = mapped_column(String(50), nullable=False)
    tag: Mapped[str] = mapped_column(String(50), nullable=False)
    ticket_status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Timestamps
    created_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    promise_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    additional_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachments: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    ccs: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    metadata_entries: Mapped[List["TicketMetadataModel"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
        order_by="TicketMetadataModel.id",
    )


class TicketMetadataModel(Base):
    """
    Database model for ticket metadata.

    Maps to the 'ticket_metadata' table.
    """
    __tablename__ = "ticket_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.ticket_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # "key" and "value" are reserved words in MySQL
    key: Mapped[str] = mapped_column("meta_key", String(255), nullable=False)
    value: Mapped[str] = mapped_column("meta_value", Text, nullable=False)

    ticket: Mapped[TicketModel] = relationship(back_populates="metadata_entries")


class SchemaHistoryModel(Base):
    """
    Applied schema versions.

    Maps to the 'ticket_schema_history' table.
    """
    __tablename__ = "ticket_schema_history"

    version_id: Mapped[str] = mapped_column(String(150), primary_key=True)
    product_version: Mapped[str] = mapped_column(String(32), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
