"""
debate_tournament/routes/matches.py
Match stage control and outcomes
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.database import get_db
from debate_tournament.orm.user import User
from debate_tournament.rbac import get_current_user
from debate_tournament.schemas.match import (
    CompletionCheckResponse, MatchOutcomeResponse, MatchResponse,
    NextStagesResponse, StageTransitionRequest
)
from debate_tournament.services.match_service import (
    get_match, get_match_outcome, get_match_tally, get_next_allowed_stages,
    request_stage_transition, validate_match_completion
)
from debate_tournament.services.standings_engine import as_decimal
from debate_tournament.services.standings_service import tally_breakdown

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/matches", tags=["Matches"])


@router.get("/{match_id}/stages", response_model=NextStagesResponse)
async def list_next_stages(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    stages = await get_next_allowed_stages(db, match_id)
    match = await get_match(db, match_id)
    return {
        "match_id": match_id,
        "current_stage": match.status,
        "next_stages": [stage.to_dict() for stage in stages],
    }


@router.post("/{match_id}/stage", response_model=MatchResponse)
async def change_stage(
    match_id: int,
    request: StageTransitionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Moderator/admin only. Moving to 'completed' validates every judge's scores."""
    return await request_stage_transition(db, match_id, request.stage, current_user)


@router.post("/{match_id}/validate-completion", response_model=CompletionCheckResponse)
async def check_completion(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await validate_match_completion(db, match_id)
    return {"match_id": match_id, "ready": True}


@router.get("/{match_id}/outcome", response_model=MatchOutcomeResponse)
async def get_outcome(
    match_id: int,
    team_id: int = Query(..., description="Team whose perspective to report"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Real judges are listed per judge; a virtual judge is reported under virtual_judge."""
    outcome = await get_match_outcome(db, match_id, team_id)
    tally = await get_match_tally(db, match_id)
    return dict(
        tally_breakdown(tally),
        match_id=match_id,
        team_id=outcome.team_id,
        opponent_id=outcome.opponent_id,
        wins=as_decimal(outcome.wins),
        votes=as_decimal(outcome.votes),
        score_differential=as_decimal(outcome.score_differential),
    )
