"""Health check routes."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.deps import get_readonly_db
from core.config import get_settings
from core.logging_config import get_logger
from core.utils import utcnow

router = APIRouter()
LOGGER = get_logger(__name__)


@router.get("/health")
async def health_check(db: Session = Depends(get_readonly_db)) -> Any:
    """Liveness plus a database round-trip; 503 when the database is unreachable."""
    settings = get_settings()
    body: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "environment": settings.environment,
        "checks": {
            "phone_crypto": {"configured": settings.is_phone_crypto_configured()},
        },
    }

    try:
        db.execute(text("SELECT 1"))
        body["checks"]["database"] = {"status": "healthy", "connected": True}
    except SQLAlchemyError as e:
        LOGGER.error("Database health check failed: %s", e)
        body["status"] = "unhealthy"
        body["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
        return JSONResponse(status_code=503, content=body)

    return body
