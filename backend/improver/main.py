"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from improver.config import settings
from improver.api import ingest, recordings, remote


app = FastAPI(
    title="Improver Replay API",
    description="Session recording ingest and replay reconstruction",
    version="0.1.0",
)

# Configure CORS; the recorder posts cross-origin from customer pages
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(ingest.router)
app.include_router(recordings.router)
app.include_router(remote.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Improver Replay API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
