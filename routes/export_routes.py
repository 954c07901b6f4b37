"""
Raw event export.

GET /api/v1/analytics/links/{link_id}/export?format=csv|json

The body is streamed batch by batch; validation and ownership errors are
raised before streaming starts and use the normal error responses.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from dependencies import get_current_user_id, get_export_service
from schemas.dto.requests.analytics import ExportQuery
from schemas.dto.responses.common import ErrorResponse
from services.export_service import ExportService

router = APIRouter(prefix="/api/v1/analytics", tags=["export"])


@router.get(
    "/links/{link_id}/export",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Export raw click events",
)
async def export_link_events(
    link_id: str,
    query: Annotated[ExportQuery, Query()],
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[ExportService, Depends(get_export_service)],
) -> StreamingResponse:
    start, end = query.window()
    stream = await service.open_export(link_id, user_id, query.format, start, end)
    return StreamingResponse(
        stream.chunks,
        media_type=stream.media_type,
        headers={"Content-Disposition": f'attachment; filename="{stream.filename}"'},
    )
