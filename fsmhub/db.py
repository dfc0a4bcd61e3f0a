from contextlib import contextmanager

from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy import create_engine
from .config import settings


engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
    pool_recycle=3600,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

# Fresh Session per request; never a scoped_session
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session):
    """Run a multi-step write as one transaction on ``db``.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.
    Code inside the block should only ``flush()``.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
