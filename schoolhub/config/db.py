from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from schoolhub.config.settings import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite connections are shared across the request thread pool
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL, echo=settings.DB_ECHO, connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a request-scoped database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
