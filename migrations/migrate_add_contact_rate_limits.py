#!/usr/bin/env python3
"""Migration script to create the contact_rate_limits table on an existing database."""

import os
import sys
from sqlalchemy import inspect

# Load environment variables
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from src.shared.contact.database import ContactRateLimit, make_engine

DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    print("ERROR: DATABASE_URL environment variable is required.")
    sys.exit(1)

# Heroku uses postgres:// but SQLAlchemy 2.0+ requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = make_engine(DATABASE_URL)


def table_exists(connection, table_name):
    """Check if a table exists."""
    return inspect(connection).has_table(table_name)


def run_migration():
    print("Running migration to create contact_rate_limits table...")
    print(f"Database: {engine.url.host}:{engine.url.port}/{engine.url.database}")

    with engine.begin() as connection:
        if table_exists(connection, ContactRateLimit.__tablename__):
            print("✓ Table 'contact_rate_limits' already exists.")
        else:
            print("Creating contact_rate_limits table and indexes...")
            ContactRateLimit.__table__.create(bind=connection)
            print("✓ Successfully created contact_rate_limits table.")

    print("\n✓ Migration completed successfully!")


if __name__ == "__main__":
    run_migration()
