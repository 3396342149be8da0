"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementation of every ticket operation.

``BaseTicketRepository`` holds the behaviour shared by all backends; the
provider subclasses in ``providers.py`` only supply dialect-specific SQL and
error recognition.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from sqlalchemy import asc, delete, desc, func, inspect, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement, TextClause

from ticket_manager import __version__
from ticket_manager.config import Priority, SearchMode, Tags, TicketStatus
from ticket_manager.core.exceptions import (
    ApplicationException,
    ConfigurationException,
    ConflictException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from ticket_manager.infrastructure.database import build_session_maker
from ticket_manager.infrastructure.storage import AttachmentFile, AttachmentStorage
from ticket_manager.shared.infrastructure.logging import get_logger
from ticket_manager.tickets.application.dto import (
    CreateTicketDTO,
    UpdateAssigneeDTO,
    UpdateDescriptionDTO,
    UpdateTicketDTO,
    UpdateTitleDTO,
)
from ticket_manager.tickets.domain import (
    EnumParser,
    SearchTicketResult,
    Ticket,
    TicketMetadata,
    TicketSummary,
)
from ticket_manager.tickets.domain.entities import attachment_name
from ticket_manager.tickets.infrastructure.filters import escape_like
from ticket_manager.tickets.infrastructure.models import (
    SCHEMA_VERSION,
    SchemaHistoryModel,
    TicketMetadataModel,
    TicketModel,
    utc_now,
)

logger = get_logger(__name__)

S = TypeVar("S", bound=Enum)
P = TypeVar("P", bound=Enum)
T = TypeVar("T", bound=Enum)

EnumValue = Union[str, Enum]

SORT_COLUMNS = {
    "name": TicketModel.creator_email,
    "title": TicketModel.title,
    "assignee": TicketModel.assignee_email,
    "createdat": TicketModel.created_date,
    "updatedat": TicketModel.updated_date,
}

UPDATABLE_ENUM_FIELDS = ("ticket_status", "priority", "tag")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _validate_ticket_id(ticket_id: int) -> None:
    if ticket_id <= 0:
        raise ValidationException("Ticket ID must be greater than zero.")


def _validate_page(page_number: int, page_size: int) -> None:
    if page_number <= 0:
        raise ValidationException("Page number must be greater than zero.")
    if page_size <= 0:
        raise ValidationException("Page size must be greater than zero.")


def _validate_metadata(metadata: Optional[Dict[str, str]]) -> None:
    if metadata and any(_is_blank(k) or _is_blank(v) for k, v in metadata.items()):
        raise ValidationException("Metadata entries must have non-empty keys and values.")


def _clean_ccs(ccs: Optional[Sequence[str]]) -> List[str]:
    return [cc.strip() for cc in ccs or [] if not _is_blank(cc)]


def _metadata_models(metadata: Optional[Dict[str, str]]) -> List[TicketMetadataModel]:
    return [TicketMetadataModel(key=k.strip(), value=v.strip()) for k, v in (metadata or {}).items()]


def _match(column, term: str, mode: SearchMode) -> ColumnElement[bool]:
    lowered = func.lower(column)
    if mode == SearchMode.EXACT:
        return lowered == term
    escaped = escape_like(term)
    if mode == SearchMode.STARTS_WITH:
        pattern = f"{escaped}%"
    elif mode == SearchMode.ENDS_WITH:
        pattern = f"%{escaped}"
    else:
        pattern = f"%{escaped}%"
    return lowered.like(pattern, escape="\\")


class BaseTicketRepository(ABC, Generic[S, P, T]):
    """
    Ticket data access shared by every database provider.

    Generic over the caller's status, priority and tag enumerations. Enum
    members are stored as their string value.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        storage: Optional[AttachmentStorage] = None,
        status_enum: Optional[Type[S]] = None,
        priority_enum: Optional[Type[P]] = None,
        tag_enum: Optional[Type[T]] = None,
    ):
        self._engine = engine
        self._session_maker = build_session_maker(engine)
        self.storage = storage or AttachmentStorage()
        self.status_enum = status_enum or TicketStatus
        self.priority_enum = priority_enum or Priority
        self.tag_enum = tag_enum or Tags

        # Fails early for enumerations without members
        self.default_status = EnumParser.first_member(self.status_enum)
        self.default_priority = EnumParser.first_member(self.priority_enum)
        self.default_tag = EnumParser.first_member(self.tag_enum)

    # ========== Dialect hooks ==========

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable backend name."""
        pass

    @abstractmethod
    def mark_schema_applied_statement(self) -> TextClause:
        """INSERT recording a schema version that ignores an existing row."""
        pass

    @abstractmethod
    def is_table_already_exists_error(self, exc: SQLAlchemyError) -> bool:
        """Whether exc is the backend's "table already exists" error."""
        pass

    # ========== Session handling ==========

    @asynccontextmanager
    async def _session(self, error_message: str) -> AsyncIterator[AsyncSession]:
        """
        Unit of work: commits on success, rolls back on error.

        Driver errors are wrapped in ``RepositoryException`` with
        error_message; application exceptions pass through.
        """
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except ApplicationException:
                await session.rollback()
                raise
            except IntegrityError as exc:
                await session.rollback()
                logger.warning(error_message, extra={"error": str(exc.orig)})
                raise ConflictException(
                    "Ticket conflicts with an existing record.", {"error": str(exc.orig)}
                ) from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(error_message, extra={"error": str(exc), "provider": self.provider_name})
                raise RepositoryException(error_message, {"error": str(exc)}) from exc

    def _ticket_query(self, include_metadata: bool = False):
        stmt = select(TicketModel)
        if include_metadata:
            stmt = stmt.options(selectinload(TicketModel.metadata_entries))
        return stmt

    async def _get_model(
        self, session: AsyncSession, ticket_id: int, include_metadata: bool = False
    ) -> Optional[TicketModel]:
        stmt = self._ticket_query(include_metadata).where(TicketModel.ticket_id == ticket_id)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _require_model(
        self, session: AsyncSession, ticket_id: int, include_metadata: bool = False
    ) -> TicketModel:
        model = await self._get_model(session, ticket_id, include_metadata)
        if model is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return model

    async def _title_taken(
        self, session: AsyncSession, title: str, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(TicketModel.ticket_id).where(TicketModel.title == title)
        if exclude_id is not None:
            stmt = stmt.where(TicketModel.ticket_id != exclude_id)
        return (await session.execute(stmt.limit(1))).first() is not None

    @staticmethod
    def _to_entity(model: TicketModel, include_metadata: bool = False) -> Ticket:
        metadata = []
        if include_metadata:
            metadata = [
                TicketMetadata(key=m.key, value=m.value, id=m.id, ticket_id=m.ticket_id)
                for m in model.metadata_entries
            ]
        return Ticket(
            ticket_id=model.ticket_id,
            creator_email=model.creator_email,
            title=model.title,
            description=model.description,
            priority=model.priority,
            tag=model.tag,
            ticket_status=model.ticket_status,
            created_date=as_utc(model.created_date),
            updated_date=as_utc(model.updated_date),
            assignee_email=model.assignee_email,
            promise_date=as_utc(model.promise_date),
            additional_info=model.additional_info,
            attachments=list(model.attachments or []),
            ccs=list(model.ccs or []),
            metadata=metadata,
        )

    @staticmethod
    def _to_summary(model: TicketModel) -> TicketSummary:
        return TicketSummary(
            title=model.title,
            description=model.description,
            ticket_status=model.ticket_status,
            tag=model.tag,
            priority=model.priority,
            creator_email=model.creator_email,
            assignee_email=model.assignee_email,
            additional_info=model.additional_info,
            promise_date=as_utc(model.promise_date),
            ccs=list(model.ccs or []),
        )

    def _storage_value(self, enum_type: Type[Enum], value: Optional[EnumValue], label: str) -> str:
        return EnumParser.to_storage(EnumParser.parse_or_default(enum_type, value, label))

    # ========== Schema lifecycle ==========

    async def can_connect(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Database connection check failed",
                extra={"provider": self.provider_name, "error": str(exc)},
            )
            return False

    async def is_context_created(self) -> bool:
        """Database is reachable and the ticket tables exist."""
        if not await self.can_connect():
            return False
        try:
            async with self._engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(TicketModel.__tablename__)
                )
        except SQLAlchemyError as exc:
            raise RepositoryException(
                "Failed to check if the context is created.", {"error": str(exc)}
            ) from exc

    async def get_applied_schema_versions(self) -> List[str]:
        async with self._session("Failed to read the schema history.") as session:
            result = await session.execute(
                select(SchemaHistoryModel.version_id).order_by(SchemaHistoryModel.version_id)
            )
            return list(result.scalars().all())

    async def _mark_schema_applied(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                self.mark_schema_applied_statement(),
                {"version_id": SCHEMA_VERSION, "product_version": __version__},
            )

    async def apply_migrations(self) -> bool:
        """
        Create the ticket schema unless its version is already recorded.

        Returns True when the schema was created or marked as applied in this
        call, False when it was already up to date.

        Raises:
            ConfigurationException: database unreachable
            RepositoryException: migration failed
        """
        if not await self.can_connect():
            raise ConfigurationException(
                "Database doesn't exist. Please create and configure a database first."
            )

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SchemaHistoryModel.__table__.create, checkfirst=True)

            if SCHEMA_VERSION in await self.get_applied_schema_versions():
                logger.info("Ticket schema up to date", extra={"version": SCHEMA_VERSION})
                return False

            async with self._engine.begin() as conn:
                await conn.run_sync(
                    TicketModel.metadata.create_all,
                    tables=[TicketModel.__table__, TicketMetadataModel.__table__],
                )
            await self._mark_schema_applied()
        except SQLAlchemyError as exc:
            if not self.is_table_already_exists_error(exc):
                raise RepositoryException(f"Migration failed: {exc}", {"error": str(exc)}) from exc
            # Tables created outside this service; record the version
            logger.warning(
                "Ticket tables already exist, marking schema as applied",
                extra={"provider": self.provider_name, "version": SCHEMA_VERSION},
            )
            await self._mark_schema_applied()

        logger.info(
            "Ticket schema applied",
            extra={"provider": self.provider_name, "version": SCHEMA_VERSION},
        )
        return True

    async def dispose(self) -> None:
        await self._engine.dispose()

    # ========== Create ==========

    async def create_ticket(
        self, dto: CreateTicketDTO, files: Optional[Sequence[AttachmentFile]] = None
    ) -> Ticket:
        """
        Insert a ticket with its metadata and attachments.

        Raises:
            ValidationException: blank metadata, bad enum value or bad files
            ConflictException: title already used
        """
        files = list(files or [])
        _validate_metadata(dto.metadata)
        status = self._storage_value(self.status_enum, dto.ticket_status, "status")
        priority = self._storage_value(self.priority_enum, dto.priority, "priority")
        tag = self._storage_value(self.tag_enum, dto.tag, "tag")
        if files:
            self.storage.validate_batch(files)

        title = dto.title.strip()
        stored: List[str] = []
        try:
            async with self._session("An error occurred while creating the ticket.") as session:
                if await self._title_taken(session, title):
                    raise ConflictException(f"Ticket with title {title} already exists")

                now = utc_now()
                model = TicketModel(
                    creator_email=dto.creator_email.strip(),
                    title=title,
                    description=dto.description.strip(),
                    assignee_email=None if _is_blank(dto.assignee_email) else dto.assignee_email.strip(),
                    priority=priority,
                    tag=tag,
                    ticket_status=status,
                    created_date=now,
                    updated_date=now,
                    promise_date=as_utc(dto.promise_date),
                    additional_info=dto.additional_info,
                    attachments=[],
                    ccs=_clean_ccs(dto.ccs),
                )
                model.metadata_entries = _metadata_models(dto.metadata)
                session.add(model)
                await session.flush()

                if files:
                    stored = await self.storage.save(model.ticket_id, files)
                    model.attachments = stored
        except Exception:
            if stored:
                await self.storage.delete_ticket_files(model.ticket_id, stored)
            raise

        logger.info(
            "Ticket created",
            extra={"ticket_id": model.ticket_id, "attachments": len(stored), "provider": self.provider_name},
        )
        return self._to_entity(model, include_metadata=True)

    async def upload_files(self, files: Sequence[AttachmentFile], ticket_id: int) -> List[str]:
        """Store files in the ticket folder and return their paths."""
        _validate_ticket_id(ticket_id)
        if not files:
            raise ValidationException("No files provided.")
        self.storage.validate_batch(files)
        return await self.storage.save(ticket_id, files)

    # ========== Read ==========

    async def fetch_tickets(
        self, from_index: int = 0, page_size: int = 10, include_metadata: bool = False
    ) -> List[Ticket]:
        if from_index < 0:
            raise ValidationException("From index cannot be negative.")
        if page_size <= 0:
            raise ValidationException("Page size must be greater than zero.")

        async with self._session("An error occurred while fetching tickets") as session:
            stmt = (
                self._ticket_query(include_metadata)
                .order_by(TicketModel.ticket_id)
                .offset(from_index)
                .limit(page_size)
            )
            models = (await session.execute(stmt)).scalars().all()
            return [self._to_entity(m, include_metadata) for m in models]

    async def get_ticket_by_id(self, ticket_id: int, include_metadata: bool = False) -> Optional[Ticket]:
        _validate_ticket_id(ticket_id)
        async with self._session("Failed to get ticket(s)") as session:
            model = await self._get_model(session, ticket_id, include_metadata)
            return self._to_entity(model, include_metadata) if model else None

    async def get_all_tickets(
        self, page_number: int = 1, page_size: int = 20, include_metadata: bool = False
    ) -> List[Ticket]:
        _validate_page(page_number, page_size)
        async with self._session("Failed to get ticket(s)") as session:
            stmt = (
                self._ticket_query(include_metadata)
                .order_by(TicketModel.ticket_id)
                .offset((page_number - 1) * page_size)
                .limit(page_size)
            )
            models = (await session.execute(stmt)).scalars().all()
            return [self._to_entity(m, include_metadata) for m in models]

    async def search_tickets(
        self,
        search_term: Optional[str] = None,
        status: Optional[EnumValue] = None,
        tag: Optional[EnumValue] = None,
        priority: Optional[EnumValue] = None,
        sort_by: str = "name",
        ascending: bool = True,
        page_number: int = 1,
        page_size: int = 10,
        search_mode: Union[SearchMode, str] = SearchMode.CONTAINS,
        include_metadata: bool = False,
    ) -> SearchTicketResult:
        """
        Search tickets by free text and optional enum filters.

        The term is matched case-insensitively against creator email, title,
        assignee email and description. Filters that do not parse are
        ignored. ``total_count`` is the number of matches before paging.
        """
        _validate_page(page_number, page_size)
        mode = EnumParser.parse_or_default(SearchMode, search_mode, "search mode")

        conditions: List[ColumnElement[bool]] = []
        term = (search_term or "").strip().lower()
        if term:
            conditions.append(or_(*(
                _match(column, term, mode)
                for column in (
                    TicketModel.creator_email,
                    TicketModel.title,
                    TicketModel.assignee_email,
                    TicketModel.description,
                )
            )))

        for column, enum_type, value in (
            (TicketModel.ticket_status, self.status_enum, status),
            (TicketModel.tag, self.tag_enum, tag),
            (TicketModel.priority, self.priority_enum, priority),
        ):
            member = EnumParser.try_parse(enum_type, value)
            if member is not None:
                conditions.append(column == EnumParser.to_storage(member))

        sort_column = SORT_COLUMNS.get((sort_by or "").strip().lower(), TicketModel.creator_email)
        direction = asc if ascending else desc

        async with self._session("An error occurred while searching tickets.") as session:
            total = await session.scalar(
                select(func.count()).select_from(TicketModel).where(*conditions)
            )
            paged = (
                self._ticket_query(include_metadata)
                .where(*conditions)
                .order_by(direction(sort_column), direction(TicketModel.ticket_id))
                .offset((page_number - 1) * page_size)
                .limit(page_size)
            )
            models = (await session.execute(paged)).scalars().all()
            return SearchTicketResult(
                tickets=[self._to_entity(m, include_metadata) for m in models],
                total_count=total or 0,
            )

    async def filter_ticket_by(self, condition: ColumnElement[bool]) -> List[TicketSummary]:
        """Tickets matching an arbitrary condition over ``TicketModel``."""
        async with self._session("Failed to get ticket(s)") as session:
            stmt = select(TicketModel).where(condition).order_by(TicketModel.ticket_id)
            models = (await session.execute(stmt)).scalars().all()
            return [self._to_summary(m) for m in models]

    async def _get_tickets_by(
        self,
        column,
        stored_value: str,
        include_metadata: bool,
        page_number: int,
        page_size: int,
        error_message: str,
    ) -> List[Ticket]:
        _validate_page(page_number, page_size)
        async with self._session(error_message) as session:
            stmt = (
                self._ticket_query(include_metadata)
                .where(column == stored_value)
                .order_by(TicketModel.ticket_id)
                .offset((page_number - 1) * page_size)
                .limit(page_size)
            )
            models = (await session.execute(stmt)).scalars().all()
            return [self._to_entity(m, include_metadata) for m in models]

    def _parse_required(self, enum_type: Type[Enum], value: Optional[EnumValue], label: str) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationException(f"{label.capitalize()} cannot be null or empty.")
        return EnumParser.to_storage(EnumParser.parse(enum_type, value, label))

    async def get_tickets_by_status(
        self, status: EnumValue, include_metadata: bool = False, page_number: int = 1, page_size: int = 20
    ) -> List[Ticket]:
        stored = self._parse_required(self.status_enum, status, "status")
        return await self._get_tickets_by(
            TicketModel.ticket_status, stored, include_metadata, page_number, page_size,
            "An error occurred while retrieving tickets by status.",
        )

    async def get_tickets_by_priority(
        self, priority: EnumValue, include_metadata: bool = False, page_number: int = 1, page_size: int = 20
    ) -> List[Ticket]:
        stored = self._parse_required(self.priority_enum, priority, "priority")
        return await self._get_tickets_by(
            TicketModel.priority, stored, include_metadata, page_number, page_size,
            "An error occurred while retrieving tickets by priority.",
        )

    async def get_tickets_by_tag(
        self, tag: EnumValue, include_metadata: bool = False, page_number: int = 1, page_size: int = 20
    ) -> List[Ticket]:
        stored = self._parse_required(self.tag_enum, tag, "tag")
        return await self._get_tickets_by(
            TicketModel.tag, stored, include_metadata, page_number, page_size,
            "An error occurred while retrieving tickets by tag.",
        )

    # ========== Counts ==========

    async def _count(self, error_message: str, condition: Optional[ColumnElement[bool]] = None) -> int:
        async with self._session(error_message) as session:
            stmt = select(func.count()).select_from(TicketModel)
            if condition is not None:
                stmt = stmt.where(condition)
            return (await session.scalar(stmt)) or 0

    async def get_number_of_tickets(self) -> int:
        return await self._count("An error occurred while getting the number of tickets.")

    async def get_number_of_tickets_by_status(self, status: EnumValue) -> int:
        stored = self._parse_required(self.status_enum, status, "status")
        return await self._count(
            "An error occurred while getting the number of tickets by status.",
            TicketModel.ticket_status == stored,
        )

    async def get_number_of_tickets_by_priority(self, priority: EnumValue) -> int:
        stored = self._parse_required(self.priority_enum, priority, "priority")
        return await self._count(
            "An error occurred while getting the number of tickets by priority.",
            TicketModel.priority == stored,
        )

    async def get_number_of_tickets_by_tag(self, tag: EnumValue) -> int:
        stored = self._parse_required(self.tag_enum, tag, "tag")
        return await self._count(
            "An error occurred while getting the number of tickets by tag.",
            TicketModel.tag == stored,
        )

    # ========== Update ==========

    async def update_ticket(self, ticket_id: int, dto: UpdateTicketDTO) -> Ticket:
        """
        Apply a partial update.

        Blank strings leave the field unchanged. ``ccs`` and ``metadata``
        replace the stored values when given.
        """
        _validate_ticket_id(ticket_id)
        _validate_metadata(dto.metadata)
        status = None if _is_blank(dto.ticket_status) else EnumParser.to_storage(
            EnumParser.parse(self.status_enum, dto.ticket_status, "status"))
        priority = None if _is_blank(dto.priority) else EnumParser.to_storage(
            EnumParser.parse(self.priority_enum, dto.priority, "priority"))
        tag = None if _is_blank(dto.tag) else EnumParser.to_storage(
            EnumParser.parse(self.tag_enum, dto.tag, "tag"))

        async with self._session("An unexpected error occurred while updating ticket.") as session:
            model = await self._require_model(session, ticket_id, include_metadata=True)

            if not _is_blank(dto.title) and dto.title.strip() != model.title:
                title = dto.title.strip()
                if await self._title_taken(session, title, exclude_id=ticket_id):
                    raise ConflictException(f"Ticket with title {title} already exists")
                model.title = title
            if not _is_blank(dto.description):
                model.description = dto.description.strip()
            if not _is_blank(dto.assignee_email):
                model.assignee_email = dto.assignee_email.strip()
            if not _is_blank(dto.additional_info):
                model.additional_info = dto.additional_info
            if dto.promise_date is not None:
                model.promise_date = as_utc(dto.promise_date)
            if dto.ccs is not None:
                model.ccs = _clean_ccs(dto.ccs)
            if status:
                model.ticket_status = status
            if priority:
                model.priority = priority
            if tag:
                model.tag = tag
            if dto.metadata is not None:
                model.metadata_entries = _metadata_models(dto.metadata)

            model.updated_date = utc_now()
            await session.flush()
            logger.info("Ticket updated", extra={"ticket_id": ticket_id})
            return self._to_entity(model, include_metadata=True)

    async def _update_text_field(self, ticket_id: int, field_name: str, value: str, label: str) -> Ticket:
        _validate_ticket_id(ticket_id)
        async with self._session(f"Failed to update ticket {label}") as session:
            model = await self._require_model(session, ticket_id)
            if not _is_blank(value):
                value = value.strip()
                if field_name == "title" and value != model.title:
                    if await self._title_taken(session, value, exclude_id=ticket_id):
                        raise ConflictException(f"Ticket with title {value} already exists")
                setattr(model, field_name, value)
                model.updated_date = utc_now()
            return self._to_entity(model)

    async def update_ticket_title(self, ticket_id: int, dto: UpdateTitleDTO) -> Ticket:
        return await self._update_text_field(ticket_id, "title", dto.title, "title")

    async def update_ticket_description(self, ticket_id: int, dto: UpdateDescriptionDTO) -> Ticket:
        return await self._update_text_field(ticket_id, "description", dto.description, "description")

    async def update_ticket_assignee(self, ticket_id: int, dto: UpdateAssigneeDTO) -> Ticket:
        return await self._update_text_field(ticket_id, "assignee_email", dto.assignee_email, "assignee")

    async def update_ticket_field(self, ticket_id: int, field_name: str, value: str) -> Ticket:
        """Set one of the enum-backed columns to an already parsed stored value."""
        _validate_ticket_id(ticket_id)
        if field_name not in UPDATABLE_ENUM_FIELDS:
            raise ValidationException(f"Invalid field name: {field_name}")

        async with self._session(
            f"An unexpected error occurred while updating ticket {field_name}."
        ) as session:
            model = await self._require_model(session, ticket_id)
            setattr(model, field_name, value)
            model.updated_date = utc_now()
            logger.info("Ticket field updated", extra={"ticket_id": ticket_id, "field": field_name, "value": value})
            return self._to_entity(model)

    async def update_ticket_status(self, ticket_id: int, status: EnumValue) -> Ticket:
        stored = EnumParser.to_storage(EnumParser.parse(self.status_enum, status, "status"))
        return await self.update_ticket_field(ticket_id, "ticket_status", stored)

    async def update_ticket_priority(self, ticket_id: int, priority: EnumValue) -> Ticket:
        stored = EnumParser.to_storage(EnumParser.parse(self.priority_enum, priority, "priority"))
        return await self.update_ticket_field(ticket_id, "priority", stored)

    async def update_ticket_tag(self, ticket_id: int, tag: EnumValue) -> Ticket:
        stored = EnumParser.to_storage(EnumParser.parse(self.tag_enum, tag, "tag"))
        return await self.update_ticket_field(ticket_id, "tag", stored)

    # ========== Attachments ==========

    async def update_ticket_attachment(
        self,
        ticket_id: int,
        files: Sequence[AttachmentFile],
        file_name: Optional[str] = None,
    ) -> Ticket:
        """
        Add attachments, or replace the attachment named file_name.

        Raises:
            ValidationException: no files, too many files or identical files
            ConflictException: a new name clashes with another attachment
            ResourceNotFoundException: ticket or replaced attachment missing
        """
        _validate_ticket_id(ticket_id)
        files = list(files or [])
        max_files = self.storage.max_files
        if file_name is None:
            if not files:
                raise ValidationException("No files provided.")
            if len(files) > max_files:
                raise ValidationException(f"Maximum of {max_files} files can be uploaded at once.")
        else:
            self.storage.validate_file_name(file_name)
            if not files or len(files) > max_files:
                raise ValidationException(f"Must upload 1 to {max_files} new files.")
        self.storage.validate_batch(files)

        stored: List[str] = []
        replaced: Optional[str] = None
        try:
            async with self._session("Failed to update ticket attachment.") as session:
                model = await self._require_model(session, ticket_id)
                ticket = self._to_entity(model)
                kept = list(ticket.attachments)

                if file_name is not None:
                    replaced = ticket.find_attachment(file_name)
                    if replaced is None:
                        raise ResourceNotFoundException("Attachment", file_name)
                    kept = [p for p in kept if p != replaced]

                existing = {attachment_name(p).lower() for p in kept}
                for attachment in files:
                    if attachment.file_name.lower() in existing:
                        raise ConflictException(
                            f"A file named '{attachment.file_name}' already exists in this ticket."
                        )

                stored = await self.storage.save(ticket_id, files)
                model.attachments = kept + stored
                model.updated_date = utc_now()
                await session.flush()
                result = self._to_entity(model)
        except Exception:
            # a same-named replacement overwrote the old file in place
            for path in stored:
                if path != replaced:
                    await self.storage.delete_file_with_retry(path)
            raise

        # the old file goes only once the new list is committed
        if replaced is not None and replaced not in stored:
            await self.storage.delete_file_with_retry(replaced)

        logger.info(
            "Ticket attachments updated",
            extra={"ticket_id": ticket_id, "replaced": file_name, "added": [f.file_name for f in files]},
        )
        return result

    async def delete_attachment(self, ticket_id: int, file_name: str) -> None:
        _validate_ticket_id(ticket_id)
        self.storage.validate_file_name(file_name)

        async with self._session("Failed to delete the attachment.") as session:
            model = await self._require_model(session, ticket_id)
            path = self._to_entity(model).find_attachment(file_name)
            if path is None:
                raise ResourceNotFoundException("Attachment", file_name)
            model.attachments = [p for p in model.attachments if p != path]
            model.updated_date = utc_now()

        await self.storage.delete_file_with_retry(path)
        logger.info("Attachment deleted", extra={"ticket_id": ticket_id, "file_name": file_name})

    # ========== Delete ==========

    async def delete_ticket(self, ticket_id: int) -> None:
        """Delete a ticket, its metadata and its attachment folder."""
        _validate_ticket_id(ticket_id)
        async with self._session("An unexpected error occurred while deleting ticket.") as session:
            model = await self._require_model(session, ticket_id)
            attachments = list(model.attachments or [])
            await session.execute(delete(TicketMetadataModel).where(TicketMetadataModel.ticket_id == ticket_id))
            await session.execute(delete(TicketModel).where(TicketModel.ticket_id == ticket_id))

        await self.storage.delete_ticket_files(ticket_id, attachments)
        logger.info("Ticket deleted", extra={"ticket_id": ticket_id})
