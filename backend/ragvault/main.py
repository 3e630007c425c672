import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from sqlmodel import Session, text

from ragvault.core.config import settings
from ragvault.api.api_router import api_router
from ragvault.core.db import engine, init_db
from ragvault.core.errors import KnowledgeBaseError
from ragvault.core.tracing import setup_tracing
from ragvault.kb.service import build_knowledge_base

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    setup_tracing()

    if getattr(app.state, "knowledge_base", None) is None:
        app.state.knowledge_base = build_knowledge_base(settings, engine)

    try:
        recovered = app.state.knowledge_base.recover_stale_entries()
        if recovered:
            logger.warning(f"Recovered {recovered} abandoned ingestions")
    except KnowledgeBaseError as e:
        logger.warning(f"Skipping stale entry recovery at startup: {e.message}")

    yield

    # Shutdown


app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALL_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnowledgeBaseError)
async def knowledge_base_error_handler(request: Request, exc: KnowledgeBaseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.error_code, "message": exc.message},
    )


app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/healthz")
async def health_check():
    """Health check endpoint that verifies connectivity to the metadata DB and Qdrant."""
    health_status = {
        "status": "healthy",
        "services": {
            "database": "unknown",
            "qdrant": "unknown",
        }
    }

    try:
        with Session(engine) as session:
            session.exec(text("SELECT 1"))
            health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    try:
        app.state.knowledge_base.qdrant_client.get_collections()
        health_status["services"]["qdrant"] = "healthy"
    except Exception as e:
        health_status["services"]["qdrant"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    return health_status
