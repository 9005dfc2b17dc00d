"""
Liveness and readiness probes
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import get_container
from app.core.container import Container
from app.core.logging import get_logger
from app.db.session import check_database

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def health(container: Container = Depends(get_container)):
    """Process is up."""
    return {
        "status": "UP",
        "app": container.settings.APP_NAME,
        "env": container.settings.APP_ENV,
    }


@router.get("/ready")
def readiness(container: Container = Depends(get_container)):
    """Database and integration status; 503 while the database is unreachable."""
    try:
        database_up = check_database(container.session_factory)
    except SQLAlchemyError as e:
        logger.error(f"Readiness check: database unreachable: {e}")
        database_up = False

    body = {
        "status": "UP" if database_up else "DOWN",
        "database": "UP" if database_up else "DOWN",
        "integrations": [client.status() for client in container.integrations],
    }
    return JSONResponse(status_code=200 if database_up else 503, content=body)
