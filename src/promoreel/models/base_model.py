"""Standard column definitions for consistency."""
import uuid

from sqlalchemy import Column, ForeignKey, Uuid
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime


def uuid_pk():
    return Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )


def uuid_fk(table: str, nullable: bool = False, ondelete: str = "CASCADE"):
    return Column(
        Uuid(as_uuid=True),
        ForeignKey(f"{table}.id", ondelete=ondelete),
        nullable=nullable,
        index=True,
    )


def timestamp_created():
    return Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


def timestamp_updated():
    return Column(
        DateTime(timezone=True),
        onupdate=func.now(),
    )
