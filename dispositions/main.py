"""Main FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import structlog

from dispositions.api.errors import register_exception_handlers
from dispositions.api.routes import router
from dispositions.database import Base, engine
from dispositions.observability import bind_context, clear_context, configure_logging

# Import models to register them with SQLAlchemy Base
from dispositions.models.audit import DispositionHistory  # noqa: F401
from dispositions.models.domain import Activity, Disposition, Letter, Notification, User  # noqa: F401

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    Base.metadata.create_all(bind=engine)
    logger.info("dispositions_api_starting", version=app.version)
    yield
    logger.info("dispositions_api_stopping")


app = FastAPI(
    title="Dispositions - Letter Routing Service",
    description="Routes letters linked to activities as dispositions: assignment, delegation, reports and audit trail.",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    clear_context()
    bind_context(
        method=request.method,
        path=request.url.path,
        actor_id=request.headers.get("x-user-id"),
    )
    return await call_next(request)


register_exception_handlers(app)
app.include_router(router, prefix="/api", tags=["Dispositions"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Dispositions"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
