from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import os
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.projects import router as projects_router
from .routers.chat import router as chat_router
from .routers.preview import router as preview_router
from .routers.versions import router as versions_router
from .routers.deployments import router as deployments_router
from .routers.diag import router as diag_router
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load environment variables from .env if present (NOVA_LLM_API_KEY, NOVA_PUBLIC_BASE_URL, etc.)

app = FastAPI(title="Nova Builder API", version="0.1.0")

logging.getLogger("nova").info("Starting Nova Builder API")

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

_ROUTERS = (
    projects_router,
    chat_router,
    preview_router,
    versions_router,
    deployments_router,
    diag_router,
)

# Routers, also exposed under /api for the web client
for _router in _ROUTERS:
    app.include_router(_router)
for _router in _ROUTERS:
    app.include_router(_router, prefix="/api")

# CORS (for Next.js dev server on localhost:3000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("NOVA_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "repo": os.getenv("NOVA_REPO_IMPL", "memory").lower(),
            "versions": os.getenv("NOVA_VERSION_STORE_IMPL", "memory").lower(),
        },
    }


@app.get("/")
def root():
    return {"name": "Nova Builder API", "version": "0.1.0"}


@app.get("/health")
def health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# API-prefixed convenience routes (kept alongside non-prefixed routes)
@app.get("/api")
def api_root():
    return root()


@app.get("/api/health")
def api_health():
    return _health()


@app.get("/api/metrics")
def api_metrics() -> Response:
    return metrics()
