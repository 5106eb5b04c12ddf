"""Persistence layer over the dashboard's relational store.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine
    - get_database_size() -> Optional[int]

    # Repository classes
    - RuleRepository: notification rules and their last dispatch
    - HostingRepository: hosting records joined with client/domain contacts
    - DomainRepository: domain registrations joined with their client
    - TemplateRepository: message templates
    - NotificationLogRepository: append-only dispatch records
    - SettingsRepository: company info and app_settings

Example usage:
    >>> from hosting_notifier.persistence import init_database, get_session, RuleRepository
    >>> from hosting_notifier.domain.models import RuleClass
    >>>
    >>> init_database("sqlite:///./data/hosting_panel.db")
    >>> with get_session() as session:
    ...     rules = RuleRepository(session).list_enabled(RuleClass.EXPIRY)
"""

from .database import (
    close_database,
    get_database_size,
    get_engine,
    get_session,
    init_database,
)
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    MalformedRecordError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    DomainRepository,
    HostingRepository,
    NotificationLogRepository,
    RuleRepository,
    SettingsRepository,
    TemplateRepository,
)

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "get_database_size",
    # Repositories
    "RuleRepository",
    "HostingRepository",
    "DomainRepository",
    "TemplateRepository",
    "NotificationLogRepository",
    "SettingsRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "MalformedRecordError",
]
