"""Persistence layer: SQLAlchemy engine, schema and repositories.

Public API:
    - init_database(database_url) / get_session() / close_database() / get_engine()
    - NotificationRepository: the email queue
    - RunLogRepository: daily run log
    - ScheduleRepository, InboxRepository, BroadcastTemplateRepository
    - PersistenceError and subclasses

Example usage:
    >>> from notifier.persistence import init_database, get_session, NotificationRepository
    >>> init_database("sqlite:///./data/notifier.db")
    >>> with get_session() as session:
    ...     pending = NotificationRepository(session).find_by_status_in(["PENDING"], limit=10)
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    BroadcastTemplateRepository,
    InboxRepository,
    NotificationRepository,
    RunLogRepository,
    ScheduleRepository,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "NotificationRepository",
    "RunLogRepository",
    "ScheduleRepository",
    "InboxRepository",
    "BroadcastTemplateRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
