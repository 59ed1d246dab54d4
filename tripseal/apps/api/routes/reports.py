from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.apps.api.deps import Principal, get_current_principal, get_db, load_session_access
from tripseal.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tripseal.apps.api.response import success_response
from tripseal.services.authz.arbiter import enforce
from tripseal.services.reports import build_report_bundle


router = APIRouter(prefix="/reports", tags=["reports"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("/sessions/{session_id}")
async def get_session_report(
    session_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Rendering to PDF/Excel happens outside this service.
    access = await load_session_access(db, principal, session_id)
    enforce(access.read, "You do not have access to this session")
    bundle = await build_report_bundle(db, trip_session=access.trip_session, seal=access.seal)
    return success_response(request=request, data=bundle)
