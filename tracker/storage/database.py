"""Database connection and session management."""

from typing import Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Base class for all database models
Base = declarative_base()


def create_database_engine(database_url: str,
                           echo: bool = False,
                           connect_args: Optional[dict] = None) -> Engine:
    """Create a database engine with settings suited to the URL."""
    if connect_args is None:
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
        else:
            connect_args = {}

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # a single shared connection keeps the in-memory database alive
        return create_engine(
            database_url,
            connect_args=connect_args,
            poolclass=StaticPool,
            echo=echo
        )

    return create_engine(
        database_url,
        echo=echo,
        connect_args=connect_args
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Engine):
    """Create all database tables."""
    # models must be imported so they register on Base.metadata
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_tables(engine: Engine):
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine)
