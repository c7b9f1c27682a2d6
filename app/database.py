# app/database.py
import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from app.models.all_models import Base
from app.utils.errors import Conflict

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """Build an engine; SQLite URLs get a thread-shareable single connection pool."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured on %s", engine.url.render_as_string(hide_password=True))


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.services.session_factory()
    try:
        yield db
    finally:
        db.close()


def commit_or_conflict(
    db: Session,
    message: str = "Record was modified by another request",
    duplicate: str = "Record conflicts with an existing one",
) -> None:
    """Commit, turning a failed version check or a uniqueness violation into a Conflict."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Concurrent modification detected: %s", message)
        raise Conflict(message)
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise Conflict(duplicate)
