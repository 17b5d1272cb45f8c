"""
debate_tournament/routes/adjustments.py
Administrator corrections to standings inputs (append-only)
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.database import get_db
from debate_tournament.orm.user import User
from debate_tournament.rbac import require_admin
from debate_tournament.schemas.adjustment import (
    AdjustmentLogResponse, ScoreDifferentialAdjustmentRequest,
    VoteAdjustmentRequest, WinAdjustmentRequest
)
from debate_tournament.services.adjustment_service import (
    record_score_differential_adjustment, record_vote_adjustment, record_win_adjustment
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["Adjustments"])


@router.post(
    "/{event_id}/adjustments/votes",
    response_model=AdjustmentLogResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_vote_adjustment(
    event_id: int,
    request: VoteAdjustmentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await record_vote_adjustment(
        db, event_id, request.team_id, request.adjustment, admin, reason=request.reason
    )


@router.post(
    "/{event_id}/adjustments/win-loss-ties",
    response_model=AdjustmentLogResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_win_adjustment(
    event_id: int,
    request: WinAdjustmentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await record_win_adjustment(
        db,
        event_id,
        request.team_id,
        admin,
        wins_adj=request.wins_adj,
        losses_adj=request.losses_adj,
        ties_adj=request.ties_adj,
        reason=request.reason,
    )


@router.post(
    "/{event_id}/adjustments/score-differentials",
    response_model=AdjustmentLogResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_score_differential_adjustment(
    event_id: int,
    request: ScoreDifferentialAdjustmentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await record_score_differential_adjustment(
        db, event_id, request.team_id, request.adjustment, admin, reason=request.reason
    )
