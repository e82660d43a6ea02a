from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.portal.core.context import trace_id_of
from app.portal.core.error_catalog import ErrorCatalog
from app.portal.core.errors import error_response
from app.portal.core.metrics import metrics
from app.portal.db.session import get_db

router = APIRouter()
ops_router = APIRouter()


@router.get("/health")
async def health(request: Request):
    return {"status": "ok", "trace_id": trace_id_of(request)}


@router.get("/ready")
async def ready(request: Request, db=Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return error_response(
            code=ErrorCatalog.DB_UNAVAILABLE.code,
            message=ErrorCatalog.DB_UNAVAILABLE.message,
            details={"type": exc.__class__.__name__},
            trace_id=trace_id_of(request),
            status_code=ErrorCatalog.DB_UNAVAILABLE.status_code,
        )
    return {"status": "ready", "trace_id": trace_id_of(request)}


@ops_router.get("/portal/ops/metrics")
def get_metrics():
    snapshot = metrics.render()
    return Response(content=snapshot.content, media_type=snapshot.content_type)
