"""
FastAPI backend for the CFP engine.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.middleware.auth import FakeAuthMiddleware
from backend.routes.businesses import router as businesses_router
from backend.routes.cfp import router as cfp_router
from backend.services.cfp_service import get_orchestrator, shutdown_orchestrator
from backend.services.job_worker import start_worker, stop_worker
from cfp.db import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    get_orchestrator()
    start_worker()
    yield
    stop_worker()
    shutdown_orchestrator()


app = FastAPI(
    title="CFP Engine API",
    description="Crawl, fingerprint and publish businesses",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(FakeAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(businesses_router)
app.include_router(cfp_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}
