"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from historylog.config import settings
from historylog.database import Base, engine

from historylog.routers import history

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(
    title="History Log",
    description="Audit trail of document creates, updates and deletes",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(history.router, prefix="/api/history", tags=["History"])


@app.on_event("startup")
def on_startup():
    """Create audited and history tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
