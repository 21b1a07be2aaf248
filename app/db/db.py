from typing import Optional

from sqlalchemy import Engine, inspect

from app.utils.logging import get_logger

from .models import Base
from .session import engine as default_engine

logger = get_logger()


def create_tables(engine: Optional[Engine] = None) -> None:
    """Create the alert, notification and study tables that do not exist yet."""
    engine = engine or default_engine
    Base.metadata.create_all(engine)
    logger.info(f"Schema ready with {len(inspect(engine).get_table_names())} tables.")


if __name__ == "__main__":
    create_tables()
