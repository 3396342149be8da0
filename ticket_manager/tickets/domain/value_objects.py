"""
Ticket Value Objects
====================

Stateless helpers shared by the ticket providers and the API layer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Type, TypeVar, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ticket_manager.core.exceptions import ConfigurationException, ValidationException
from ticket_manager.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)


class EnumParser:
    """
    Case-insensitive parsing of caller-supplied enumerations.

    A member matches by value or by name, so ``"inprogress"``,
    ``"InProgress"`` and ``"in_progress"`` all resolve to
    ``TicketStatus.IN_PROGRESS``.
    """

    @staticmethod
    def first_member(enum_type: Type[E]) -> E:
        """Default member of an enumeration (the first declared one)."""
        members = list(enum_type)
        if not members:
            raise ConfigurationException(f"Enum {enum_type.__name__} has no values.")
        return members[0]

    @staticmethod
    def try_parse(enum_type: Type[E], value: Union[str, Enum, None]) -> Optional[E]:
        if value is None:
            return None
        if isinstance(value, enum_type):
            return value
        if isinstance(value, Enum):
            value = EnumParser.to_storage(value)

        text = str(value).strip().lower()
        if not text:
            return None
        for member in enum_type:
            if text in (str(member.value).lower(), member.name.lower()):
                return member
        return None

    @staticmethod
    def parse(enum_type: Type[E], value: Union[str, Enum, None], label: str = "value") -> E:
        """
        Parse value into a member of enum_type.

        Raises:
            ValidationException: value is blank or not a member
        """
        member = EnumParser.try_parse(enum_type, value)
        if member is None:
            raise ValidationException(f"Invalid {label} value: {value}")
        return member

    @staticmethod
    def parse_or_default(enum_type: Type[E], value: Union[str, Enum, None], label: str = "value") -> E:
        """Parse value, falling back to the first member when value is blank."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return EnumParser.first_member(enum_type)
        return EnumParser.parse(enum_type, value, label)

    @staticmethod
    def to_storage(member: Enum) -> str:
        """String stored in the database for an enum member."""
        return member.value if isinstance(member.value, str) else member.name


class TimeZoneHelper:
    """Converts ticket timestamps between UTC and a user's time zone."""

    @staticmethod
    def _zone(tz_id: str) -> Optional[ZoneInfo]:
        try:
            return ZoneInfo(tz_id)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown time zone", extra={"time_zone": tz_id})
            return None

    @staticmethod
    def to_user_timezone(utc_dt: Optional[datetime], tz_id: str) -> Optional[datetime]:
        """UTC datetime to the user's local time; unchanged when the zone is unknown."""
        if utc_dt is None:
            return None
        zone = TimeZoneHelper._zone(tz_id)
        if zone is None:
            return utc_dt
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=timezone.utc)
        return utc_dt.astimezone(zone)

    @staticmethod
    def to_utc(local_dt: Optional[datetime], tz_id: str) -> Optional[datetime]:
        """
        Local datetime to UTC.

        Naive values are interpreted in tz_id, or as UTC when the zone is
        unknown.
        """
        if local_dt is None:
            return None
        if local_dt.tzinfo is None:
            zone = TimeZoneHelper._zone(tz_id) or timezone.utc
            local_dt = local_dt.replace(tzinfo=zone)
        return local_dt.astimezone(timezone.utc)
