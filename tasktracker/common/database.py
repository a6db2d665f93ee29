from functools import lru_cache
from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker


Base = declarative_base()

SessionFactory = sessionmaker[Session]


@lru_cache
def create_session_factory(database_url: str) -> SessionFactory:
    """Create (once per URL) the engine and session factory, creating any
    missing tables."""
    # Mapped models must be registered on Base before create_all.
    import tasktracker.tasks.model  # noqa: F401
    import tasktracker.jobs.model  # noqa: F401

    engine = create_engine(database_url, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session_factory(request: Request) -> SessionFactory:
    return request.app.state.session_factory
