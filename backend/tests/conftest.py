"""
Test configuration and shared fixtures for the clinic finance test suite.

Store tests run against an in-memory SQLite database by default (set
TEST_DATABASE_URL to use PostgreSQL). Each test gets a clean database state via
automatic transaction rollback.
"""

import os

# Must be set before core.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool, StaticPool

from core.database import Base

# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models.insurer import Insurer
from models.transaction import Transaction
from models.expense import Expense
from models.insurance_payment import InsurancePayment


# Test database URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def db_engine():
    """
    Create a database engine for the test session.

    SQLite uses a single shared in-memory connection; pysqlite's own transaction
    handling is disabled so SAVEPOINT-based isolation works.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )

        @event.listens_for(engine, "connect")
        def do_connect(dbapi_connection, connection_record):  # type: ignore
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def do_begin(conn):  # type: ignore
            conn.exec_driver_sql("BEGIN")
    else:
        engine = create_engine(
            TEST_DATABASE_URL,
            poolclass=NullPool,  # Don't pool connections (each test gets fresh connection)
            echo=False,
        )

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Provide a database session for a test with automatic rollback.

    The session joins an outer transaction and turns its own commit/rollback
    calls into savepoints, so application code can commit freely while the test
    leaves no data behind.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    # Teardown: rollback everything
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def insurers(db_session: Session):
    """Two insurers: RSSB at 80% and MMI at 90%."""
    rssb = Insurer(name="RSSB", coverage_percentage=80)
    mmi = Insurer(name="MMI", coverage_percentage=90)
    db_session.add_all([rssb, mmi])
    db_session.commit()
    return rssb, mmi
