from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

import config


def make_engine(url: str):
    if url.startswith("sqlite"):
        # writers wait on each other instead of failing with "database is locked"
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
Base = declarative_base()


def configure_engine(url: str):
    """Point SessionLocal at a different database (tests, CLI overrides)."""
    global engine
    engine.dispose()
    engine = make_engine(url)
    SessionLocal.configure(bind=engine)
    return engine


def init_db():
    # models must be imported so their tables are registered on Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
