"""
NodeFlow - FastAPI Application Entry Point.

An async workflow execution engine for LLM and tool pipelines.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from nodeflow.config import settings
from nodeflow.api.routes import execute, workflows, websocket
from nodeflow.clients.factory import SUPPORTED_PROVIDERS
from nodeflow.engine.nodes import registered_executors
from nodeflow.workflows.templates import list_templates


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Node kinds: {[kind.value for kind in registered_executors()]}")
    logger.info(f"Workflow templates: {[t.name for t in list_templates()]}")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Workflow Execution API

Run directed graphs of typed nodes against a single text input.

### Features
- **Nodes**: input, llm, tool, agent and output nodes
- **Edges**: Define execution flow between nodes; fan-in nodes wait for every input
- **Retries**: LLM calls retry with exponential backoff
- **Errors**: Failures are classified and reported with recovery hints
- **Streaming**: Server-sent events and WebSocket progress updates

### Quick Start
1. Validate a workflow: `POST /workflows/validate`
2. Run it: `POST /execute`
3. Watch it run: `POST /execute/stream` or `WS /ws/execute`

### Templates
Predefined workflows are listed at `GET /workflows/templates`.
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(execute.router)
app.include_router(workflows.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "An async workflow execution engine for LLM and tool pipelines",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "execute": "/execute",
            "execute_stream": "/execute/stream",
            "validate": "/workflows/validate",
            "templates": "/workflows/templates",
            "websocket_execute": "/ws/execute",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "node_kinds": [kind.value for kind in registered_executors()],
        "providers": list(SUPPORTED_PROVIDERS),
        "active_streams": len(websocket.manager),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
