"""
Ticket Application Services
===========================

``ManageTickets`` is the entry point used by the API layer. It selects the
database provider from the type of the config object, checks that the
database context exists before every call, caches read paths and exposes
lazy batch loading.

Following SOLID principles:
- Dependency Inversion: the API depends on ``ITicketManager``
- Open/Closed: a new backend is a new provider plus a config type
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from ticket_manager.config import Priority, SearchMode, Settings, Tags, TicketStatus
from ticket_manager.core.exceptions import ConfigurationException, ContextNotInitializedException
from ticket_manager.infrastructure.cache import CacheKeyBuilder, ICacheManager, build_cache_manager
from ticket_manager.infrastructure.database import (
    DatabaseConfig,
    MySQLDb,
    PSQLDb,
    SQLDb,
    build_engine,
)
from ticket_manager.infrastructure.storage import AttachmentFile, AttachmentStorage
from ticket_manager.shared.infrastructure.logging import get_logger, log_latency
from ticket_manager.tickets.application.dto import (
    CreateTicketDTO,
    UpdateAssigneeDTO,
    UpdateDescriptionDTO,
    UpdateTicketDTO,
    UpdateTitleDTO,
)
from ticket_manager.tickets.application.pagination import DataService, LazyLoadManager
from ticket_manager.tickets.domain import SearchTicketResult, Ticket, TicketSummary
from ticket_manager.tickets.infrastructure.providers import (
    MySQLTicketRepository,
    PostgreSQLTicketRepository,
    SQLServerTicketRepository,
)
from ticket_manager.tickets.infrastructure.repositories import BaseTicketRepository

logger = get_logger(__name__)

S = TypeVar("S", bound=Enum)
P = TypeVar("P", bound=Enum)
T = TypeVar("T", bound=Enum)

EnumValue = Union[str, Enum]

PROVIDERS: Dict[Type[DatabaseConfig], Type[BaseTicketRepository]] = {
    PSQLDb: PostgreSQLTicketRepository,
    MySQLDb: MySQLTicketRepository,
    SQLDb: SQLServerTicketRepository,
}

_ticket_adapter = TypeAdapter(Ticket)
_ticket_list_adapter = TypeAdapter(List[Ticket])
_search_adapter = TypeAdapter(SearchTicketResult)


# ========== Manager Interface (Dependency Inversion) ==========

class ITicketManager(ABC):
    """Interface for ticket lifecycle operations."""

    @abstractmethod
    async def create_ticket(self, dto: CreateTicketDTO, files: Optional[Sequence[AttachmentFile]] = None) -> Ticket:
        """Create a ticket with optional attachments."""

    @abstractmethod
    async def upload_files(self, files: Sequence[AttachmentFile], ticket_id: int) -> List[str]:
        """Store files in a ticket folder."""

    @abstractmethod
    async def fetch_tickets(self, from_index: int = 0, page_size: int = 10, include_metadata: bool = False) -> List[Ticket]:
        """Offset window of tickets ordered by id."""

    @abstractmethod
    async def search_tickets(self, search_term: Optional[str] = None, status: Optional[EnumValue] = None,
                             tag: Optional[EnumValue] = None, priority: Optional[EnumValue] = None,
                             sort_by: str = "name", ascending: bool = True, page_number: int = 1,
                             page_size: int = 10, search_mode: Union[SearchMode, str] = SearchMode.CONTAINS,
                             include_metadata: bool = False) -> SearchTicketResult:
        """Free-text search with enum filters, sorting and paging."""

    @abstractmethod
    async def get_ticket_by_id(self, ticket_id: int, include_metadata: bool = False) -> Optional[Ticket]:
        """Get one ticket, or None."""

    @abstractmethod
    async def get_all_tickets(self, page_number: int = 1, page_size: int = 20, include_metadata: bool = False) -> List[Ticket]:
        """One page of all tickets."""

    @abstractmethod
    async def filter_ticket_by(self, condition: ColumnElement[bool]) -> List[TicketSummary]:
        """Tickets matching an arbitrary condition."""

    @abstractmethod
    async def update_ticket(self, ticket_id: int, dto: UpdateTicketDTO) -> Ticket:
        """Partial update of a ticket."""

    @abstractmethod
    async def delete_ticket(self, ticket_id: int) -> None:
        """Delete a ticket and its attachments."""

    @abstractmethod
    async def delete_attachment(self, ticket_id: int, file_name: str) -> None:
        """Delete one attachment."""

    @abstractmethod
    async def update_ticket_attachment(self, ticket_id: int, files: Sequence[AttachmentFile],
                                       file_name: Optional[str] = None) -> Ticket:
        """Add attachments, or replace the one named file_name."""

    @abstractmethod
    async def update_ticket_title(self, ticket_id: int, dto: UpdateTitleDTO) -> Ticket:
        """Change the title."""

    @abstractmethod
    async def update_ticket_description(self, ticket_id: int, dto: UpdateDescriptionDTO) -> Ticket:
        """Change the description."""

    @abstractmethod
    async def update_ticket_assignee(self, ticket_id: int, dto: UpdateAssigneeDTO) -> Ticket:
        """Change the assignee."""

    @abstractmethod
    async def update_ticket_status(self, ticket_id: int, status: EnumValue) -> Ticket:
        """Change the status."""

    @abstractmethod
    async def update_ticket_priority(self, ticket_id: int, priority: EnumValue) -> Ticket:
        """Change the priority."""

    @abstractmethod
    async def update_ticket_tag(self, ticket_id: int, tag: EnumValue) -> Ticket:
        """Change the tag."""

    @abstractmethod
    async def get_tickets_by_status(self, status: EnumValue, include_metadata: bool = False,
                                    page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        """One page of tickets with a status."""

    @abstractmethod
    async def get_tickets_by_priority(self, priority: EnumValue, include_metadata: bool = False,
                                      page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        """One page of tickets with a priority."""

    @abstractmethod
    async def get_tickets_by_tag(self, tag: EnumValue, include_metadata: bool = False,
                                 page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        """One page of tickets with a tag."""

    @abstractmethod
    async def get_number_of_tickets(self) -> int:
        """Total number of tickets."""

    @abstractmethod
    async def get_number_of_tickets_by_status(self, status: EnumValue) -> int:
        """Number of tickets with a status."""

    @abstractmethod
    async def get_number_of_tickets_by_priority(self, priority: EnumValue) -> int:
        """Number of tickets with a priority."""

    @abstractmethod
    async def get_number_of_tickets_by_tag(self, tag: EnumValue) -> int:
        """Number of tickets with a tag."""


# ========== Application Service ==========

class ManageTickets(ITicketManager, Generic[S, P, T]):
    """
    Ticket data access over the configured backend.

    The provider is chosen by the config type: ``PSQLDb`` for PostgreSQL,
    ``MySQLDb`` for MySQL and ``SQLDb`` for SQL Server. ``start()`` must
    succeed before any ticket operation is used.

    Reads by id, by enum value and searches are cached; every mutation
    drops the cached entries of the ticket plus all cached lists and
    searches.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        engine: AsyncEngine,
        cache_manager: ICacheManager,
        key_builder: Optional[CacheKeyBuilder] = None,
        storage: Optional[AttachmentStorage] = None,
        apply_migrations_automatically: bool = True,
        status_enum: Type[S] = TicketStatus,
        priority_enum: Type[P] = Priority,
        tag_enum: Type[T] = Tags,
        lazy_load_page_size: int = 10,
        cache_ttl: Optional[int] = None,
    ):
        provider_type = next(
            (provider for config_type, provider in PROVIDERS.items() if isinstance(config, config_type)),
            None,
        )
        if provider_type is None:
            raise ConfigurationException("Unsupported database type.", {"config": type(config).__name__})

        self.config = config
        self._provider: BaseTicketRepository = provider_type(
            engine, storage, status_enum, priority_enum, tag_enum
        )
        self._cache = cache_manager
        self._keys = key_builder or CacheKeyBuilder()
        self._cache_ttl = cache_ttl
        self.apply_migrations_automatically = apply_migrations_automatically
        self._context_created = False

        self._lazy_loader: LazyLoadManager[Ticket] = LazyLoadManager(
            DataService(lazy_load_page_size, self.fetch_tickets)
        )

    @property
    def provider(self) -> BaseTicketRepository:
        return self._provider

    @property
    def is_context_created(self) -> bool:
        return self._context_created

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """
        Apply migrations when enabled and verify the database context.

        Raises:
            ConfigurationException: database unreachable during migration
            RepositoryException: migration failed
            ContextNotInitializedException: tables missing after startup
        """
        if self.apply_migrations_automatically:
            await self._provider.apply_migrations()

        self._context_created = await self._provider.is_context_created()
        if not self._context_created:
            raise ContextNotInitializedException({"provider": self._provider.provider_name})

        logger.info("Ticket manager started", extra={"provider": self._provider.provider_name})

    async def stop(self) -> None:
        self._context_created = False
        await self._cache.close()
        await self._provider.dispose()

    def _ensure_context(self) -> None:
        if not self._context_created:
            raise ContextNotInitializedException()

    # ========== Cache ==========

    async def _invalidate(self, ticket_id: Optional[int] = None) -> None:
        if ticket_id is not None:
            await self._cache.remove_by_prefix(self._keys.prefix("ticket", ticket_id))
        await self._cache.remove_by_prefix(self._keys.prefix("list"))
        await self._cache.remove_by_prefix(self._keys.prefix("search"))

    # ========== Lazy loading ==========

    @property
    def has_more_tickets(self) -> bool:
        return self._lazy_loader.has_more_items

    @property
    def current_tickets(self) -> List[Ticket]:
        return self._lazy_loader.current_items

    async def load_next_batch(self) -> List[Ticket]:
        """Next window of tickets; the last window again once exhausted."""
        self._ensure_context()
        return await self._lazy_loader.load_next_batch()

    def reset_lazy_loading(self) -> None:
        self._lazy_loader.reset()

    # ========== Create ==========

    async def create_ticket(self, dto: CreateTicketDTO, files: Optional[Sequence[AttachmentFile]] = None) -> Ticket:
        self._ensure_context()
        ticket = await self._provider.create_ticket(dto, files)
        await self._invalidate()
        return ticket

    async def upload_files(self, files: Sequence[AttachmentFile], ticket_id: int) -> List[str]:
        self._ensure_context()
        return await self._provider.upload_files(files, ticket_id)

    # ========== Read ==========

    async def fetch_tickets(self, from_index: int = 0, page_size: int = 10, include_metadata: bool = False) -> List[Ticket]:
        self._ensure_context()
        return await self._provider.fetch_tickets(from_index, page_size, include_metadata)

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
        self._ensure_context()
        key = self._keys.build_key(
            "search", search_term, status, tag, priority, sort_by, ascending,
            page_number, page_size, search_mode, include_metadata,
        )

        async def load() -> SearchTicketResult:
            with log_latency(logger, "search_tickets", page_number=page_number, page_size=page_size):
                return await self._provider.search_tickets(
                    search_term, status, tag, priority, sort_by, ascending,
                    page_number, page_size, search_mode, include_metadata,
                )

        return await self._cache.get_or_set(key, load, _search_adapter, self._cache_ttl)

    async def get_ticket_by_id(self, ticket_id: int, include_metadata: bool = False) -> Optional[Ticket]:
        self._ensure_context()
        key = self._keys.build_key("ticket", ticket_id, include_metadata)
        return await self._cache.get_or_set(
            key,
            lambda: self._provider.get_ticket_by_id(ticket_id, include_metadata),
            _ticket_adapter,
            self._cache_ttl,
        )

    async def get_all_tickets(self, page_number: int = 1, page_size: int = 20, include_metadata: bool = False) -> List[Ticket]:
        self._ensure_context()
        return await self._provider.get_all_tickets(page_number, page_size, include_metadata)

    async def filter_ticket_by(self, condition: ColumnElement[bool]) -> List[TicketSummary]:
        self._ensure_context()
        return await self._provider.filter_ticket_by(condition)

    async def _cached_list(self, kind: str, value: EnumValue, include_metadata: bool,
                           page_number: int, page_size: int, loader) -> List[Ticket]:
        self._ensure_context()
        key = self._keys.build_key("list", kind, value, include_metadata, page_number, page_size)
        return await self._cache.get_or_set(
            key,
            lambda: loader(value, include_metadata, page_number, page_size),
            _ticket_list_adapter,
            self._cache_ttl,
        )

    async def get_tickets_by_status(self, status: EnumValue, include_metadata: bool = False,
                                    page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        return await self._cached_list("status", status, include_metadata, page_number, page_size,
                                       self._provider.get_tickets_by_status)

    async def get_tickets_by_priority(self, priority: EnumValue, include_metadata: bool = False,
                                      page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        return await self._cached_list("priority", priority, include_metadata, page_number, page_size,
                                       self._provider.get_tickets_by_priority)

    async def get_tickets_by_tag(self, tag: EnumValue, include_metadata: bool = False,
                                 page_number: int = 1, page_size: int = 20) -> List[Ticket]:
        return await self._cached_list("tag", tag, include_metadata, page_number, page_size,
                                       self._provider.get_tickets_by_tag)

    # ========== Counts ==========

    async def get_number_of_tickets(self) -> int:
        self._ensure_context()
        return await self._provider.get_number_of_tickets()

    async def get_number_of_tickets_by_status(self, status: EnumValue) -> int:
        self._ensure_context()
        return await self._provider.get_number_of_tickets_by_status(status)

    async def get_number_of_tickets_by_priority(self, priority: EnumValue) -> int:
        self._ensure_context()
        return await self._provider.get_number_of_tickets_by_priority(priority)

    async def get_number_of_tickets_by_tag(self, tag: EnumValue) -> int:
        self._ensure_context()
        return await self._provider.get_number_of_tickets_by_tag(tag)

    # ========== Mutations ==========

    async def _mutate(self, ticket_id: int, operation, *args: Any):
        self._ensure_context()
        result = await operation(ticket_id, *args)
        await self._invalidate(ticket_id)
        return result

    async def update_ticket(self, ticket_id: int, dto: UpdateTicketDTO) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket, dto)

    async def delete_ticket(self, ticket_id: int) -> None:
        await self._mutate(ticket_id, self._provider.delete_ticket)

    async def delete_attachment(self, ticket_id: int, file_name: str) -> None:
        await self._mutate(ticket_id, self._provider.delete_attachment, file_name)

    async def update_ticket_attachment(self, ticket_id: int, files: Sequence[AttachmentFile],
                                       file_name: Optional[str] = None) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_attachment, files, file_name)

    async def update_ticket_title(self, ticket_id: int, dto: UpdateTitleDTO) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_title, dto)

    async def update_ticket_description(self, ticket_id: int, dto: UpdateDescriptionDTO) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_description, dto)

    async def update_ticket_assignee(self, ticket_id: int, dto: UpdateAssigneeDTO) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_assignee, dto)

    async def update_ticket_status(self, ticket_id: int, status: EnumValue) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_status, status)

    async def update_ticket_priority(self, ticket_id: int, priority: EnumValue) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_priority, priority)

    async def update_ticket_tag(self, ticket_id: int, tag: EnumValue) -> Ticket:
        return await self._mutate(ticket_id, self._provider.update_ticket_tag, tag)


def create_ticket_manager(
    settings: Settings,
    engine: Optional[AsyncEngine] = None,
    cache_manager: Optional[ICacheManager] = None,
    storage: Optional[AttachmentStorage] = None,
) -> ManageTickets:
    """
    Wire a ``ManageTickets`` from settings.

    Collaborators that are passed in are used as-is; the rest are built
    from settings.
    """
    config = settings.database_config()
    return ManageTickets(
        config=config,
        engine=engine or build_engine(config, echo=settings.debug),
        cache_manager=cache_manager or build_cache_manager(settings),
        key_builder=CacheKeyBuilder(settings.cache_namespace),
        storage=storage or AttachmentStorage(settings.upload_dir, settings.max_files_per_upload),
        apply_migrations_automatically=settings.apply_migrations_automatically,
        lazy_load_page_size=settings.lazy_load_page_size,
        cache_ttl=settings.cache_ttl_seconds,
    )
