from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import NullPool

from promoreel.config import get_settings


# ---------------------------------------------------------
# SQLAlchemy Base class
# ---------------------------------------------------------
class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------
# Create engine
# ---------------------------------------------------------
# NullPool prevents connection reuse issues during local dev / hot reload.
engine = create_engine(
    get_settings().database_url,
    poolclass=NullPool,
    echo=False,
)

# ---------------------------------------------------------
# SessionLocal factory
# ---------------------------------------------------------
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# ---------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------
def get_db():
    """Yields a database session for each request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
