from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from app.utils.errors import StorageError
from app.utils.logging import get_logger

logger = get_logger()

# Connection-level failures; constraint violations and the like pass through
UNREACHABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


@contextmanager
def storage_guard(db: Session, operation: str) -> Iterator[None]:
    """Translate data-store connectivity failures into StorageError."""
    try:
        yield
    except UNREACHABLE_ERRORS as e:
        logger.error(f"Data store unreachable during {operation}: {str(e)}")
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.warning(f"Rollback failed after storage error in {operation}")
        raise StorageError(f"Data store unreachable during {operation}") from e
