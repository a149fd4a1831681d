# picking_replenishment/db/__init__.py
from typing import Optional

from .connection import DatabaseConnection
from picking_replenishment.exceptions import DatabaseError


def initialize(url: Optional[str] = None, create_tables: bool = True) -> DatabaseConnection:
    """Open a database connection and create tables if needed."""
    try:
        db = DatabaseConnection(url)
        db.test_connection()
        if create_tables:
            db.create_all_tables()
        return db
    except DatabaseError:
        raise
    except Exception as e:
        raise DatabaseError(f"Database initialization failed: {str(e)}")


__all__ = [
    'initialize',
    'DatabaseConnection',
]
