"""Health check API endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph import __version__
from execgraph.storage.database import get_db

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Database connectivity check."""
    db_status = "unknown"
    db_ok = False
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
        db_ok = True
    except Exception as e:
        db_status = f"error: {str(e)}"

    payload = {
        "status": "healthy" if db_ok else "degraded",
        "service": "execgraph",
        "version": __version__,
        "database": db_status,
    }
    return JSONResponse(payload, status_code=200 if db_ok else 503)
