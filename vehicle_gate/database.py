# =======================================================================================
# vehicle_gate/database.py - Database Management
# =======================================================================================
from contextlib import contextmanager
from typing import Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from .config import Config, config

class DatabaseManager:
    """Manages database connections for the SQL authorizer backend."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_config(cls, settings: Config = config) -> "DatabaseManager":
        """Build a pooled engine from DB_URL."""
        engine = create_engine(
            settings.DB_URL,
            poolclass=QueuePool,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
            future=True,
        )
        return cls(engine)

    @contextmanager
    def get_connection(self):
        """Get a database connection with automatic cleanup."""
        with self.engine.begin() as conn:
            yield conn

    def execute(self, query: str, params: Optional[dict] = None) -> None:
        """Execute a statement with parameters, discarding any result."""
        with self.get_connection() as conn:
            conn.execute(text(query), params or {})

    def fetch_one(self, query: str, params: Optional[dict] = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def dispose(self) -> None:
        self.engine.dispose()
