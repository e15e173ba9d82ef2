"""
NexusConnect Portal - FastAPI Backend
Main application entry point with health check and API routing.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import async_session_maker, engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    catalog,
    accounts,
    invoices,
    snapshot,
    dashboard,
    support,
)
from services.snapshot_store import seed_demo_data


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting NexusConnect Portal API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if settings.SEED_DEMO_DATA:
        try:
            async with async_session_maker() as session:
                if await seed_demo_data(session):
                    print("🌱 Seeded demo accounts and invoices.")
        except Exception as exc:
            print(f"⚠️ Demo data seed skipped: {exc}")
    if not settings.OPENAI_API_KEY:
        print("💬 OPENAI_API_KEY not set; support assistant will answer with the hotline fallback.")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="NexusConnect Portal API",
    description="Customer self-service and admin billing for NexusConnect internet subscriptions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(catalog.router, prefix="/catalog", tags=["Catalog"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
app.include_router(snapshot.router, prefix="/snapshot", tags=["Snapshot"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
app.include_router(support.router, prefix="/support", tags=["Support"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "NexusConnect Portal API",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT)
