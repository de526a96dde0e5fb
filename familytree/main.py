from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

try:
    from .errors import install_error_handlers
    from .middleware import RequestLogMiddleware
    from .routes.family_trees import router as family_trees_router
    from .routes.persons import router as persons_router
    from .routes.relations import router as relations_router
    from .routes.tree import router as tree_router
    from .routes.upload import router as upload_router
    from .uploads import upload_dir
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from errors import install_error_handlers
    from middleware import RequestLogMiddleware
    from routes.family_trees import router as family_trees_router
    from routes.persons import router as persons_router
    from routes.relations import router as relations_router
    from routes.tree import router as tree_router
    from routes.upload import router as upload_router
    from uploads import upload_dir

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

_STARTED = time.monotonic()

app = FastAPI(title="Family Tree API", version="0.1.0")


def _cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)

install_error_handlers(app)

app.include_router(persons_router)
app.include_router(family_trees_router)
app.include_router(relations_router)
app.include_router(tree_router)
app.include_router(upload_router)

app.mount("/uploads", StaticFiles(directory=str(upload_dir())), name="uploads")


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED, 3),
    }
