from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

# Base class for all database models
Base = declarative_base()

def make_engine(database_url: str) -> Engine:
    """
    Create a database engine for the given URL.

    SQLite is opened with check_same_thread disabled, because sessions run
    in the threadpool.
    In-memory SQLite shares a single connection.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=False,  # Set to True for SQL query logging
            pool_size=20,
            max_overflow=0,
            pool_pre_ping=True,  # Test connections before using
        )

    options = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
        options["poolclass"] = StaticPool

    engine = create_engine(database_url, echo=False, **options)

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute("PRAGMA busy_timeout = 5000")
        cursor.close()

    return engine

def make_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )

def init_db(engine: Engine):
    """
    Initialize database tables.
    Call this once at application startup.

    Creates all tables defined in models using SQLAlchemy ORM.
    """
    try:
        database = engine.url.database
        if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        # Import all models to register them with Base
        from models.word_test import WordTest
        from models.participant import Participant
        from models.response import Response

        # Create all tables
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Database tables initialized successfully")
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {str(e)}")
        raise
