from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from promoreel.db.database import Base
from promoreel.models.base_model import uuid_pk
from promoreel.models.mixins import TimestampMixin


class Store(Base, TimestampMixin):
    """
    A merchant storefront connected through OAuth.

    Only the fields the publish step needs are modelled; the install flow
    that populates them lives elsewhere.
    """
    __tablename__ = "stores"

    id = uuid_pk()
    name = Column(String, nullable=True)
    shop_domain = Column(String, unique=True, nullable=False)
    access_token = Column(String, nullable=False)

    generation_jobs = relationship("GenerationJob", back_populates="store")

    def __repr__(self):
        return f"<Store(id={self.id}, shop_domain={self.shop_domain})>"
