"""
Procura - conversational purchasing assistant
FastAPI backend: streamed, tool-augmented turns over Server-Sent Events
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import runtime_config
from errors import ProcuraError, error_response
from logging_config import setup_logging
from routers import conversations
from routers.chat_orchestration import AuthDialog, TurnOrchestrator
from routers.chat_streaming import EventStreamAdapter
from services.catalog import ProductCatalog, QuotationGenerator, build_catalog
from services.database import Database, InMemoryDatabase, seed_users
from services.email import EmailService, build_email_service
from services.knowledge import KnowledgeBase, LocalKnowledgeBase
from services.llm_client import LLMClient
from services.pending_store import PendingMessageStore, build_pending_store
from services.redis_client import RedisManager
from tools import ShoppingTools, ToolRegistry, register_shopping_tools
from utils.llm import close_llm_client, get_llm_client

setup_logging()
logger = logging.getLogger(__name__)

# Instance ID - changes on every startup
INSTANCE_ID = str(uuid.uuid4())


def configure_app_state(
    app: FastAPI,
    *,
    db: Database,
    llm: LLMClient,
    email: EmailService,
    pending_store: PendingMessageStore,
    knowledge: Optional[KnowledgeBase] = None,
    catalog: Optional[ProductCatalog] = None,
    quotations: Optional[QuotationGenerator] = None,
    cancel_on_disconnect: Optional[bool] = None,
) -> EventStreamAdapter:
    """Wire collaborators into the orchestration core and attach them to ``app.state``."""
    registry = register_shopping_tools(
        ToolRegistry(), ShoppingTools(db, knowledge=knowledge, catalog=catalog, quotations=quotations)
    )
    auth_dialog = AuthDialog(db, email)
    orchestrator = TurnOrchestrator(db, llm, registry, auth_dialog)
    adapter = EventStreamAdapter(pending_store, orchestrator, cancel_on_disconnect=cancel_on_disconnect)

    app.state.db = db
    app.state.pending_store = pending_store
    app.state.tool_registry = registry
    app.state.stream_adapter = adapter
    return adapter


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProcuraError)
    async def procura_error_handler(request: Request, exc: ProcuraError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code.value}: {exc}")
        return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    db = InMemoryDatabase()
    await seed_users(db, runtime_config.seed_users_path or None)

    redis_manager = RedisManager(url=runtime_config.redis_url) if runtime_config.pending_backend == "redis" else None
    pending_store = await build_pending_store(runtime_config, redis_manager)

    knowledge = LocalKnowledgeBase(runtime_config.knowledge_dir)
    knowledge.load()

    email = build_email_service(runtime_config)
    catalog = build_catalog(runtime_config)

    adapter = configure_app_state(
        app,
        db=db,
        llm=get_llm_client(),
        email=email,
        pending_store=pending_store,
        knowledge=knowledge,
        catalog=catalog,
    )
    app.state.redis = redis_manager
    logger.info(
        f"Procura ready: model={runtime_config.model_chat} pending={pending_store.backend} "
        f"tools={len(app.state.tool_registry.get_all_tools())}"
    )

    yield

    # Shutdown
    await adapter.drain()
    await pending_store.close()
    await email.close()
    if catalog is not None:
        await catalog.close()
    await close_llm_client()
    if redis_manager is not None:
        await redis_manager.disconnect()
        logger.info("Redis connection closed")
    logger.info("Procura signing off")


app = FastAPI(
    title="Procura",
    description="Conversational purchasing assistant",
    version="1.0.0",
    lifespan=lifespan,
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# Request body size limit middleware
MAX_BODY_SIZE_API = 64 * 1024  # 64KB, messages are short


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with bodies exceeding the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_SIZE_API:
            return JSONResponse(
                status_code=413,
                content={"detail": f"Request body too large ({content_length} bytes, limit {MAX_BODY_SIZE_API} bytes)"},
            )
        return await call_next(request)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)

# CORS - configured frontend plus localhost/private network on port 3000
app.add_middleware(
    CORSMiddleware,
    allow_origins=[runtime_config.frontend_url],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+):3000$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(conversations.router)


@app.get("/health")
async def health(request: Request):
    """Health check."""
    checks = {"pending_store": request.app.state.pending_store.backend}

    redis_manager = getattr(request.app.state, "redis", None)
    if redis_manager is not None:
        redis_health = await redis_manager.health_check()
        checks["redis"] = "ok" if redis_health.get("status") == "connected" else "down"

    return {
        "status": "healthy" if checks.get("redis", "ok") == "ok" else "degraded",
        "service": "procura",
        "instance_id": INSTANCE_ID,
        "model": runtime_config.model_chat,
        "background_turns": request.app.state.stream_adapter.background_turns,
        "checks": checks,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
