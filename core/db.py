from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from core.config import settings
from core.errors import ConcurrentModification


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False):
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, future=True)

    sqlite_engine = create_engine(
        url,
        echo=echo,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool if ":memory:" in url else None,
    )

    # Enforce the variant/order item foreign keys on SQLite too
    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.SQLALCHEMY_ECHO)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Generator:
    """Commit everything done inside the block, or nothing.

    A stale optimistic version on flush/commit means another request changed
    the same row first; it surfaces as ConcurrentModification.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModification("Order was modified by another request, reload and retry") from exc
    except Exception:
        db.rollback()
        raise
