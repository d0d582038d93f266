"""Health check endpoint."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.database import get_db

router = APIRouter()


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)) -> dict[str, str | int]:
    """Return application, database and conversation engine status."""
    registry = getattr(request.app.state, "template_registry", None)
    templates = registry.count() if registry is not None else 0
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected", "templates": templates}
    except SQLAlchemyError:
        return {"status": "error", "database": "disconnected", "templates": templates}
