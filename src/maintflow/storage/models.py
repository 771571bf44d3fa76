"""
Declarative base shared by every table, plus column types that map to
native Postgres types in deployment and portable ones under SQLite.
"""

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP


class Base(DeclarativeBase):
    pass


JSON_TYPE = JSON().with_variant(JSONB, 'postgresql')
TIMESTAMP_TYPE = DateTime(timezone=True).with_variant(TIMESTAMP(timezone=True), 'postgresql')
