# src/promoreel/repositories/store_repository.py

import logging
from uuid import UUID

from sqlalchemy.orm import Session
from opentelemetry import trace

from promoreel.models.store import Store

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class StoreRepository:

    @staticmethod
    def get_by_id(db: Session, store_id: UUID) -> Store | None:
        with tracer.start_as_current_span("db.get_store") as span:
            span.set_attribute("store.id", str(store_id))
            result = db.query(Store).filter(Store.id == store_id).first()

        logger.debug("Fetched store id=%s -> %s", store_id, getattr(result, "shop_domain", None))
        return result
