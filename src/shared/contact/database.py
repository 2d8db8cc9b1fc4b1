"""Database setup and models for contact form rate limiting."""

import logging
from sqlalchemy import create_engine, Column, String, Float, Index
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.exc import IntegrityError, ProgrammingError

Base = declarative_base()


class ContactRateLimit(Base):
    """One admitted contact form attempt."""
    __tablename__ = "contact_rate_limits"

    key = Column(String, primary_key=True)  # "<identifier>_<timestamp>"
    identifier = Column(String, nullable=False)  # client IP address
    attempted_at = Column(Float, nullable=False, index=True)  # unix timestamp

    __table_args__ = (
        Index('idx_contact_rate_limit_identifier_attempted', 'identifier', 'attempted_at'),
    )


def make_engine(database_url: str) -> Engine:
    """Create an engine for the rate limit store."""
    if database_url.startswith("sqlite"):
        # The store is shared by FastAPI's threadpool workers
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # PostgreSQL connection pool configuration
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }
    return create_engine(database_url, **engine_kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    try:
        # Use checkfirst=True to avoid errors if tables already exist
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logging.info("Contact rate limit tables initialized successfully")
    except (IntegrityError, ProgrammingError) as e:
        # Concurrent workers may race on CREATE TABLE; checkfirst covers the normal case
        error_str = str(e)
        if "pg_type_typname_nsp_index" in error_str or "duplicate key" in error_str.lower():
            logging.info("Database types already exist, skipping type creation (safe to ignore)")
        else:
            raise
