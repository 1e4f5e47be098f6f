from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from rostercore.config import settings
from rostercore.models import Base


def make_session_factory(database_url: str, **engine_options) -> sessionmaker:
    if not database_url.startswith("sqlite"):
        # every fanned-out lookup holds its own connection
        engine_options.setdefault("pool_size", settings.db_pool_size)
        engine_options.setdefault("max_overflow", settings.db_max_overflow)
    engine = create_engine(database_url, echo=False, **engine_options)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False,
                        expire_on_commit=False)


SessionLocal = make_session_factory(settings.database_url)


def init_db(session_factory: sessionmaker = SessionLocal):
    """Create all tables."""
    Base.metadata.create_all(bind=session_factory.kw["bind"])
