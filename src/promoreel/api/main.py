from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

import promoreel.models  # register all tables on Base.metadata
from promoreel.api.routes.videos import router as videos_router
from promoreel.logging_config import configure_logging
from promoreel.tracing import configure_tracing

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()

app = FastAPI(title="promoreel")

app.include_router(videos_router)

# ------------------------------------------------------------------
# Observability
# ------------------------------------------------------------------
FastAPIInstrumentor.instrument_app(app)
Instrumentator().instrument(app).expose(app)


# ------------------------------------------------------------------
# Health Check
# ------------------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "ok"}
