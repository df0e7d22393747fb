"""Persistence errors shared by the SongForge repositories."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy import exc as sa_exc

__all__ = [
    "RepositoryError",
    "NotFoundError",
    "DuplicateRecordError",
    "StorageUnavailableError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryError(Exception):
    """A job, artifact or lyrics record could not be read or written."""


class NotFoundError(RepositoryError):
    """Raised when a record id does not exist."""


class DuplicateRecordError(RepositoryError):
    """Raised on unique constraint violations (e.g. a reused provider token)."""


class StorageUnavailableError(RepositoryError):
    """Raised when the database cannot be reached or the statement fails."""


def ensure_found(record: T | None, *, entity: str, identifier: str) -> T:
    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


@contextmanager
def handle_sqlalchemy_errors(*, entity: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as :class:`RepositoryError` subclasses."""
    try:
        yield
    except sa_exc.IntegrityError as exc:
        logger.warning("repository.integrity_error", extra={"entity": entity})
        raise DuplicateRecordError(f"{entity}: integrity constraint violated") from exc
    except sa_exc.DBAPIError as exc:
        logger.error("repository.database_error", extra={"entity": entity, "error": str(exc)})
        raise StorageUnavailableError(f"{entity}: database operation failed") from exc
