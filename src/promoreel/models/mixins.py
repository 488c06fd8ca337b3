"""
Mixins for SQLAlchemy models.
"""
from promoreel.models.base_model import timestamp_created, timestamp_updated


class TimestampMixin:
    """
    Adds created_at / updated_at columns.

    created_at is set by the database on insert; updated_at on every UPDATE
    issued through the ORM or a bulk query update that names it.
    """

    created_at = timestamp_created()
    updated_at = timestamp_updated()
