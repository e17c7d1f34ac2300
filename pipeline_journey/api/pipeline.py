"""
Pipeline API routes - stage catalog and gated moves.
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.database import get_session
from pipeline_journey.services.pipeline_service import PipelineService
from pipeline_journey.schemas.common import ErrorResponse
from pipeline_journey.schemas.pipeline import MoveRequest, MoveResponse, StageResponse

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


@router.get("/stages", response_model=List[StageResponse])
async def list_stages(session: AsyncSession = Depends(get_session)):
    """Ordered stage catalog."""
    pipeline_service = PipelineService(session)
    return await pipeline_service.list_stages()


@router.post(
    "/moves",
    response_model=MoveResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def move_lead(
    move: MoveRequest,
    session: AsyncSession = Depends(get_session)
):
    """
    Move a lead to another stage.

    A move blocked by the stage's entry rule returns allowed=false with the
    reason. Allowed moves schedule the stage's journey messages.
    """
    pipeline_service = PipelineService(session)
    return await pipeline_service.request_move(move.lead_id, move.target_stage_id)
