"""
Ticket filter conditions for ``filter_ticket_by``.

Each factory returns a SQLAlchemy boolean clause over ``TicketModel``.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Union

from sqlalchemy import and_, func, or_
from sqlalchemy.sql.elements import ColumnElement

from ticket_manager.core.exceptions import ValidationException
from ticket_manager.tickets.infrastructure.models import TicketModel

DateLike = Union[date, datetime]


def escape_like(term: str) -> str:
    """Escape LIKE wildcards using backslash as the escape character."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, term: str) -> ColumnElement[bool]:
    return func.lower(column).like(f"%{escape_like(term.lower())}%", escape="\\")


def _normalise(value: str) -> str:
    if value is None or not value.strip():
        raise ValidationException("Filter value cannot be empty.")
    return value.strip().lower()


def _day_start(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class TicketFilters:
    """Ready-made conditions matching the ticket search endpoints."""

    @staticmethod
    def keyword(keyword: str) -> ColumnElement[bool]:
        """Title or description contains, assignee or creator equals, or tag contains."""
        term = _normalise(keyword)
        return or_(
            _contains(TicketModel.title, term),
            _contains(TicketModel.description, term),
            func.lower(TicketModel.assignee_email) == term,
            func.lower(TicketModel.creator_email) == term,
            _contains(TicketModel.tag, term),
        )

    @staticmethod
    def assignee(email: str) -> ColumnElement[bool]:
        return func.lower(func.trim(TicketModel.assignee_email)) == _normalise(email)

    @staticmethod
    def title(title: str) -> ColumnElement[bool]:
        return func.lower(func.trim(TicketModel.title)) == _normalise(title)

    @staticmethod
    def tag(tag: str) -> ColumnElement[bool]:
        return func.lower(func.trim(TicketModel.tag)) == _normalise(tag)

    @staticmethod
    def promise_date_on(day: DateLike) -> ColumnElement[bool]:
        """Promise date falls on the given UTC day."""
        start = _day_start(day)
        return and_(
            TicketModel.promise_date >= start,
            TicketModel.promise_date < start + timedelta(days=1),
        )

    @staticmethod
    def promise_date_between(start: DateLike, end: DateLike) -> ColumnElement[bool]:
        """Promise date between two UTC days, both inclusive."""
        first, last = _day_start(start), _day_start(end)
        if last < first:
            raise ValidationException("End date must be on or after start date.")
        return and_(
            TicketModel.promise_date >= first,
            TicketModel.promise_date < last + timedelta(days=1),
        )
