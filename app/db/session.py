from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings
from app.core.logger import module_logger

_LOG = module_logger("db")


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        kwargs["pool_size"] = settings.DB_POOL_SIZE
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def _log_query(conn, cursor, statement, parameters, context, executemany):
    _LOG.debug("db:query query=%s params=%r", statement, parameters)


if settings.DB_ECHO_QUERIES:
    event.listen(engine, "before_cursor_execute", _log_query)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def close_db() -> None:
    engine.dispose()
