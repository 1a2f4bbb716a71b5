"""
Database session management for the library circulation server.

One ``DatabaseManager`` is built at process start and handed to the
consistency coordinator; nothing imports a global connection handle.

Writers must serialize on the rows they touch:

1. SQLite: every write transaction opens with ``BEGIN IMMEDIATE`` so the write
   lock is taken up front, and the driver's busy timeout equals the wait budget.
   Read-only sessions open with a deferred ``BEGIN`` and never take it.
2. PostgreSQL: ``SERIALIZABLE`` isolation, plus ``FOR UPDATE`` on book rows
   issued by the copy ledger
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import ServerConfig, get_config
from .schema import Base

logger = logging.getLogger(__name__)

# Connection execution option marking a session that never writes
READ_ONLY_OPTION = "circulation_read_only"


class DatabaseManager:
    """
    Owns the engine and session factory of the transactional store.

    The engine is created lazily on first use and disposed by ``close()``
    on shutdown.
    """

    def __init__(self, database_url: str | None = None, config: ServerConfig | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured
                URL or the SQLite file at ``database_path``.
            config: Settings carrying the transaction wait budget.
        """
        self.config = config or get_config()

        if database_url is None:
            if self.config.database_url:
                database_url = self.config.database_url
            else:
                db_path = self.config.database_path
                if not db_path.is_absolute():
                    db_path = Path.cwd() / db_path
                db_path.parent.mkdir(exist_ok=True, parents=True)
                database_url = f"sqlite:///{db_path}"
                logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._read_session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.database_url.startswith("postgresql")

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.is_sqlite:
                self._engine = create_engine(
                    self.database_url,
                    connect_args={
                        "check_same_thread": False,
                        # Seconds the driver waits on a locked database file
                        "timeout": self.config.transaction_max_wait,
                    },
                    echo=False,
                )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    # Hand transaction control to SQLAlchemy so BEGIN IMMEDIATE is ours
                    dbapi_connection.isolation_level = None
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

                @event.listens_for(self._engine, "begin")
                def begin_transaction(conn):
                    if conn.get_execution_options().get(READ_ONLY_OPTION):
                        conn.exec_driver_sql("BEGIN")
                    else:
                        conn.exec_driver_sql("BEGIN IMMEDIATE")

            else:
                self._engine = create_engine(
                    self.database_url,
                    isolation_level="SERIALIZABLE",
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    pool_timeout=self.config.transaction_max_wait,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                # Results are converted to pydantic models before commit anyway
                expire_on_commit=False,
            )
        return self._session_factory

    @property
    def read_session_factory(self) -> sessionmaker:
        """Session factory for reads that must not queue behind writers."""
        if self._read_session_factory is None:
            self._read_session_factory = sessionmaker(
                bind=self.engine.execution_options(**{READ_ONLY_OPTION: True}),
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._read_session_factory

    def create_session(self, read_only: bool = False) -> Session:
        """Create a new database session. The caller owns commit and close."""
        if read_only:
            return self.read_session_factory()
        return self.session_factory()

    def apply_statement_timeout(self, session: Session, timeout_ms: int) -> None:
        """Bound every statement of the current transaction (PostgreSQL only)."""
        if self.is_postgresql:
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """
        Verify the database connection is working.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose the engine. Called when the server shuts down."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None
        self._read_session_factory = None
