# pyright: reportMissingTypeStubs=false
"""
Database engine, session factory and the declarative base for the ledger models.

Routes receive a session through the ``get_db`` dependency; the ledger store
wraps that session and owns the commit/rollback of reconciliation batches.
"""

import logging
from typing import Any, Dict, Generator

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    # SQLite (local runs, tests) has no server-side connections to recycle
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": DB_POOL_RECYCLE_SECONDS}


engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Records are read after the reconciliation commit
)


class Base(DeclarativeBase):
    """Base class for the ledger models."""
    pass


# Ledger timestamps are written in clinic time so month/day bucketing matches the clinic's calendar
@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def stamp_created_at(mapper, connection, target):  # type: ignore
    """Fill created_at/updated_at when the caller did not set them."""
    from utils.datetime_utils import clinic_now
    now = clinic_now()
    for column_name in ("created_at", "updated_at"):
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)  # type: ignore


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def stamp_updated_at(mapper, connection, target):  # type: ignore
    from utils.datetime_utils import clinic_now
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", clinic_now())  # type: ignore


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency providing one session per request.

    Any error raised while the request holds the session rolls it back, so a
    failed reconciliation never leaves a half-applied batch behind.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except HTTPException:
        # Expected outcomes such as 404/409, nothing to log
        db.rollback()
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Database error during finance request: {e}")
        db.rollback()
        raise
    except Exception as e:
        logger.exception(f"Unexpected error in finance request session: {e}")
        db.rollback()
        raise
    finally:
        db.close()
