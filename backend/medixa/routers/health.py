"""
Health check endpoint for service monitoring and readiness probes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medixa.database import get_db

router = APIRouter(prefix="/healthz", tags=["health"])

@router.get("")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        # Chat keeps working in memory while storage is down
        database = "unavailable"
    return {"status": "ok", "database": database}
